"""Per-run simulation context: seed, random generator, clock and test identities."""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..config.schema import Config


class SimulationClock:
    """Monotonic clock in seconds, advanced explicitly by the simulation."""

    def __init__(self, start: int):
        if start < 0:
            raise ValueError(f"clock start must be non-negative, got {start}")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"cannot advance clock by a negative amount ({seconds})")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> int:
        """Jump to timestamp. The clock never moves backwards."""
        if timestamp < self._now:
            raise ValueError(f"cannot rewind clock from {self._now} to {timestamp}")
        self._now = timestamp
        return self._now


def wallet_address(index: int) -> str:
    """Deterministic test identity for wallet index."""
    return f"0x{index:040x}"


@dataclass
class SimulationContext:
    """Everything a run shares: randomness, time and identities.

    One context is created per run and threaded through every component;
    nothing here is process-wide.
    """
    seed: int
    rng: np.random.Generator
    clock: SimulationClock
    wallets: List[str]

    @property
    def admin(self) -> str:
        return self.wallets[0]

    @classmethod
    def create(cls, seed: int, num_wallets: int, start_timestamp: int) -> 'SimulationContext':
        return cls(
            seed=seed,
            rng=np.random.default_rng(seed),
            clock=SimulationClock(start_timestamp),
            wallets=[wallet_address(i) for i in range(num_wallets)]
        )

    @classmethod
    def from_config(cls, config: Config, seed: Optional[int] = None) -> 'SimulationContext':
        """Build a context from config, optionally overriding the seed."""
        if seed is None:
            seed = config.simulation.random_seed
        return cls.create(
            seed=seed,
            num_wallets=config.actors.num_wallets,
            start_timestamp=config.simulation.start_timestamp
        )
