"""Simulation runner - Orchestrate a full seeded run.

Key Features:
- Bootstraps portfolio managers (each creates a portfolio) and delegators
  (each delegates PLN into a random portfolio)
- Runs rounds through the SimulationManager, snapshotting state after each
- Collects sanity-check warnings and round failures without hiding them
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..engine.ledger import TokenType
from ..validation.sanity_checks import SanityChecker
from .actions import random_portfolio
from .context import SimulationContext
from .driver import RoundError
from .manager import RoundRecord, SimulationManager
from .pollinator import PollinatorType

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Complete simulation result."""
    config: Config
    config_hash: str
    seed: int
    rounds: List[RoundRecord]
    snapshots: List[Dict[str, Any]]
    final_snapshot: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return not self.errors


class SimulationRunner:
    """Builds the simulated world from config and runs it for N rounds."""

    def __init__(self, config: Config):
        """
        Initialize simulation runner.

        Args:
            config: Simulation configuration
        """
        self.config = config
        self.checker = SanityChecker(config)
        self.manager: Optional[SimulationManager] = None

    def build(self, random_seed: Optional[int] = None) -> SimulationManager:
        """Create the manager and bootstrap managers and delegators."""
        context = SimulationContext.from_config(self.config, seed=random_seed)
        manager = SimulationManager(self.config, context=context)
        manager.init()

        for _ in range(self.config.actors.num_managers):
            pm = manager.new_pollinator(PollinatorType.MANAGER)
            pm.create_portfolio(TokenType.BASE)
        for _ in range(self.config.actors.num_delegators):
            pd = manager.new_pollinator(PollinatorType.DELEGATOR)
            pd.delegate(random_portfolio(manager), TokenType.BASE)

        self.manager = manager
        return manager

    def run(self, num_rounds: Optional[int] = None, random_seed: Optional[int] = None) -> SimulationResult:
        """
        Run the simulation.

        Args:
            num_rounds: Rounds to run (defaults to config)
            random_seed: Random seed for reproducibility (defaults to config)

        Returns:
            Simulation result
        """
        if num_rounds is None:
            num_rounds = self.config.simulation.num_rounds
        manager = self.build(random_seed)

        warnings = [f"{w.severity}: {w.message}" for w in self.checker.check_config_inputs()]
        errors: List[str] = []
        snapshots: List[Dict[str, Any]] = []

        for _ in range(num_rounds):
            try:
                manager.run_round()
            except RoundError as e:
                # state after a failed round is not comparable, stop here
                logger.error("round %d failed: %s (cause: %r)", manager.round_index, e, e.__cause__)
                errors.append(f"round {manager.round_index}: {e} (cause: {e.__cause__!r})")
                break

            snapshots.append(manager.snapshot())
            for warning in self.checker.check_manager(manager):
                message = f"round {manager.round_index - 1}: {warning.severity}: {warning.message}"
                warnings.append(message)
                if warning.severity == "error":
                    logger.warning(message)

        return SimulationResult(
            config=self.config,
            config_hash=self.config.compute_hash(),
            seed=manager.context.seed,
            rounds=list(manager.rounds),
            snapshots=snapshots,
            final_snapshot=manager.snapshot(),
            warnings=warnings,
            errors=errors
        )
