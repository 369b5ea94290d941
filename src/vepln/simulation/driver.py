"""Round driver: a seeded, non-repeating permutation of action handlers per round."""

import logging
from enum import IntEnum
from typing import Callable, Dict, List, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class Step(IntEnum):
    """Action handlers executed once per round."""
    LOCK_GAINS_AND_REDELEGATE = 0
    NO_LOCK_DELEGATE_PLN = 1
    SAME_LOCK_DELEGATE_VEPLN_TO_SAME_PORTFOLIO = 2
    RANDOM_LOCK_DELEGATE_VEPLN_TO_RANDOM_PORTFOLIO = 3
    TIME_PASS_AND_PRICE_CHANGE = 4
    MANAGERS_REBALANCE_CLOSE_OR_NOTHING = 5
    DELEGATORS_WITHDRAW_DELEGATE_OR_NOTHING = 6


class RoundError(Exception):
    """A round failed. Carries the prices and assets the round was run with."""

    def __init__(self, message: str, prices: Sequence[int], assets: Sequence[str]):
        self.prices = list(prices)
        self.assets = list(assets)
        super().__init__(f"{message} (prices={self.prices}, assets={self.assets})")


class PriceSubmissionError(RoundError):
    """The price consumer rejected the round's prices."""


class RoundExecutionError(RoundError):
    """An action handler failed."""

    def __init__(self, step: Step, prices: Sequence[int], assets: Sequence[str]):
        self.step = step
        super().__init__(f"step {step.name} failed", prices, assets)


class RoundDriver:
    """Executes every handler once per round, in a freshly shuffled order."""

    def __init__(self, handlers: Dict[Step, Callable], rng: np.random.Generator):
        """
        Initialize round driver.

        Args:
            handlers: Handler per step, each called with the simulation manager
            rng: Generator owned by the simulation context
        """
        self.handlers = dict(handlers)
        self.rng = rng
        self.step_stack: List[Step] = sorted(self.handlers)

    def shuffle_steps(self) -> List[Step]:
        self.rng.shuffle(self.step_stack)
        return list(self.step_stack)

    def execute_round(self, manager) -> List[Step]:
        """
        Shuffle and run all handlers against manager.

        Returns:
            The order in which the steps ran

        Raises:
            RoundExecutionError: If a handler fails (cause chained)
        """
        order = self.shuffle_steps()
        for step in order:
            logger.debug("executing step %s", step.name)
            try:
                self.handlers[step](manager)
            except Exception as e:
                raise RoundExecutionError(step, manager.get_prices(), manager.get_assets()) from e
        return order
