"""Error taxonomy for the simulation engine.

Every error is raised at the point of violation, before any state is
mutated, and propagates to the immediate caller. The engine never retries.
"""

from typing import Optional


class SimulationError(Exception):
    """Base class for all expected engine failures."""


class InsufficientBalanceError(SimulationError):
    """A debit would take a balance below zero."""

    def __init__(self, ledger: str, address: str, balance: int, amount: int):
        self.ledger = ledger
        self.address = address
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"{ledger}: insufficient balance for {address} "
            f"(balance={balance}, requested={amount})"
        )


class UnauthorizedTransferError(SimulationError):
    """Derivative tokens only move to or from the lock pool or the manager."""

    def __init__(self, sender: str, recipient: str):
        self.sender = sender
        self.recipient = recipient
        super().__init__(
            f"derivative token is non-transferable: {sender} -> {recipient}"
        )


class LockAlreadyExistsError(SimulationError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"lock already created for {address}")


class NoExistingLockError(SimulationError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"{address} does not have a lock")


class LockNotExtendedError(SimulationError):
    def __init__(self, address: str, current_lock_end: int, requested_lock_end: int):
        self.address = address
        self.current_lock_end = current_lock_end
        self.requested_lock_end = requested_lock_end
        super().__init__(
            f"new lock end {requested_lock_end} must be greater than "
            f"current lock end {current_lock_end} for {address}"
        )


class LockStillActiveError(SimulationError):
    def __init__(self, address: str, lock_end: int, now: int):
        self.address = address
        self.lock_end = lock_end
        self.now = now
        super().__init__(f"lock of {address} is active until {lock_end} (now={now})")


class EmptyLockError(SimulationError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"lock of {address} holds no tokens")


class NoLockedBalanceError(SimulationError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"{address} does not hold a locked token balance")


class BenchmarkNotInitializedError(SimulationError):
    def __init__(self, address: Optional[str] = None):
        self.address = address
        if address is None:
            message = "benchmark portfolio was never created"
        else:
            message = f"benchmark was never initialized for {address}"
        super().__init__(message)


class SampleSizeInvalidError(SimulationError):
    def __init__(self, percent: float):
        self.percent = percent
        super().__init__(
            f"delegator sample percent must be in (0, 1], got {percent}"
        )


class PollinatorCapacityExceededError(SimulationError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"number of pollinators ({requested}) exceeds available wallets ({available})"
        )


class InvariantViolationError(RuntimeError):
    """An internal invariant broke. This is an engine bug, not a user error."""
