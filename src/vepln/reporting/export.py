"""Export functionality for CSV and JSON."""

import json
from typing import Any, Dict, List

import pandas as pd

from ..simulation.runner import SimulationResult


def rounds_frame(result: SimulationResult) -> pd.DataFrame:
    """One row per completed round: timing, order and headline state."""
    rows: List[Dict[str, Any]] = []
    for record, snapshot in zip(result.rounds, result.snapshots):
        row = {
            'round': record.index,
            'seed': record.seed,
            'timestamp_start': record.timestamp_start,
            'timestamp_end': record.timestamp_end,
            'step_order': ' '.join(record.step_order),
            'base_total_supply': snapshot['base_total_supply'],
            'derivative_total_supply': snapshot['derivative_total_supply'],
            'reserved_amount': snapshot['reserved_amount'],
            'recorded_supply': snapshot['recorded_supply'],
            'total_delegated': snapshot['total_delegated'],
            'benchmark_value': snapshot['benchmark_value'],
            'num_locks': len(snapshot['locks']),
        }
        for i, price in enumerate(snapshot['prices']):
            row[f'price_{i}'] = price
        rows.append(row)
    return pd.DataFrame(rows)


def export_csv(result: SimulationResult, filepath: str):
    """Export per-round results to CSV."""
    # integers exceed int64, keep them exact as strings
    df = rounds_frame(result).astype(str)
    df.to_csv(filepath, index=False)


def export_json(result: SimulationResult, filepath: str):
    """Export simulation results to JSON."""
    export_data = {
        'config': result.config.to_dict(),
        'config_hash': result.config_hash,
        'seed': result.seed,
        'rounds': [
            {
                'index': record.index,
                'timestamp_start': record.timestamp_start,
                'timestamp_end': record.timestamp_end,
                'prices': record.prices,
                'step_order': record.step_order,
            }
            for record in result.rounds
        ],
        'snapshots': result.snapshots,
        'final_snapshot': result.final_snapshot,
        'warnings': result.warnings,
        'errors': result.errors,
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
