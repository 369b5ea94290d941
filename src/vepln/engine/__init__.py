"""Accounting engine: token ledgers, locks, portfolios and rewards."""

from .errors import (
    BenchmarkNotInitializedError,
    EmptyLockError,
    InsufficientBalanceError,
    InvariantViolationError,
    LockAlreadyExistsError,
    LockNotExtendedError,
    LockStillActiveError,
    NoExistingLockError,
    NoLockedBalanceError,
    PollinatorCapacityExceededError,
    SampleSizeInvalidError,
    SimulationError,
    UnauthorizedTransferError,
)
from .ledger import Ledger, TokenType
from .locking import LOCK_POOL_ADDRESS, DerivativeLedger, LockAccounting, LockRecord, UnlockResult
from .portfolio import Portfolio, PortfolioModel, PositionView
from .rewards import IssuanceSchedule, IssuanceSegment, RewardEngine, TokenReturn, WithdrawAmount

__all__ = [
    "BenchmarkNotInitializedError",
    "EmptyLockError",
    "InsufficientBalanceError",
    "InvariantViolationError",
    "LockAlreadyExistsError",
    "LockNotExtendedError",
    "LockStillActiveError",
    "NoExistingLockError",
    "NoLockedBalanceError",
    "PollinatorCapacityExceededError",
    "SampleSizeInvalidError",
    "SimulationError",
    "UnauthorizedTransferError",
    "Ledger",
    "TokenType",
    "LOCK_POOL_ADDRESS",
    "DerivativeLedger",
    "LockAccounting",
    "LockRecord",
    "UnlockResult",
    "Portfolio",
    "PortfolioModel",
    "PositionView",
    "IssuanceSchedule",
    "IssuanceSegment",
    "RewardEngine",
    "TokenReturn",
    "WithdrawAmount",
]
