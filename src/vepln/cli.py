"""Command line entry point: run a seeded simulation and summarize it."""

import argparse
import logging
import sys

from .config.loader import load_config
from .engine.fixed_point import BASE_18
from .reporting.export import export_csv, export_json
from .simulation.runner import SimulationRunner
from .validation.sanity_checks import validate_simulation_results


def _tokens(amount: int) -> str:
    return f"{amount / BASE_18:,.4f}"


def main(argv=None):
    """Main entry point with command-line interface"""
    parser = argparse.ArgumentParser(
        description="vePLN locking and reward simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vepln-sim --rounds 20 --seed 7
  vepln-sim --config my.yaml --export-json run.json --export-csv run.csv
        """
    )
    parser.add_argument('--config', type=str, default=None,
                        help='YAML configuration file (defaults to bundled defaults)')
    parser.add_argument('--rounds', type=int, default=None,
                        help='Number of rounds (overrides config)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed (overrides config)')
    parser.add_argument('--export-csv', type=str, metavar='PATH',
                        help='Write one row per round to PATH')
    parser.add_argument('--export-json', type=str, metavar='PATH',
                        help='Write rounds and snapshots to PATH')
    parser.add_argument('--log-level', type=str, default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    config = load_config(args.config)
    result = SimulationRunner(config).run(num_rounds=args.rounds, random_seed=args.seed)

    final = result.final_snapshot
    print(f"config hash:        {result.config_hash}")
    print(f"seed:               {result.seed}")
    print(f"rounds completed:   {len(result.rounds)}")
    print(f"PLN supply:         {_tokens(final['base_total_supply'])}")
    print(f"vePLN supply:       {_tokens(final['derivative_total_supply'])}")
    print(f"inflation reserve:  {_tokens(final['reserved_amount'])}")
    print(f"total delegated:    {_tokens(final['total_delegated'])}")
    print(f"active locks:       {len(final['locks'])}")

    warnings = validate_simulation_results(config, result)
    for warning in warnings:
        print(f"[{warning.severity}] {warning.category}: {warning.message}")

    if args.export_csv:
        export_csv(result, args.export_csv)
        print(f"wrote {args.export_csv}")
    if args.export_json:
        export_json(result, args.export_json)
        print(f"wrote {args.export_json}")

    return 0 if result.completed else 1


if __name__ == "__main__":
    sys.exit(main())
