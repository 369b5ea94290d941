"""Module B: Lock Accounting - Lock records, inflation reserve and the PLN <-> vePLN swap.

Key Concepts:
- Locking escrows PLN in the lock pool and mints the same amount of vePLN
- Every deposit records the PLN supply at deposit time (lock detail)
- At unlock, each deposit made at a supply not above the current supply is
  compensated by amount * (supply_now - supply_at_deposit) / supply_now
- The inflation reserve tracks how much of the PLN supply is owed to lockers
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .errors import (
    EmptyLockError,
    InsufficientBalanceError,
    LockAlreadyExistsError,
    LockNotExtendedError,
    LockStillActiveError,
    NoExistingLockError,
    NoLockedBalanceError,
    SimulationError,
    UnauthorizedTransferError,
)
from .ledger import Ledger

logger = logging.getLogger(__name__)

LOCK_POOL_ADDRESS = "LOCKED_POLLEN"


def _require_non_negative(amount: int) -> None:
    if amount < 0:
        raise ValueError(f"lock amount must be non-negative, got {amount}")


@dataclass
class LockDeposit:
    """One deposit or top-up event of a lock."""
    supply_at_deposit: int  # PLN total supply when the deposit happened
    amount: int


@dataclass
class LockRecord:
    """Lock held by one actor (at most one active)."""
    lock_end: int  # Timestamp in seconds
    amount: int
    lock_detail: List[LockDeposit] = field(default_factory=list)

    def validate(self) -> tuple[bool, Optional[str]]:
        """Check amount == sum of deposit amounts."""
        detail_sum = sum(d.amount for d in self.lock_detail)
        if detail_sum != self.amount:
            return False, f"lock amount {self.amount} != sum(lock_detail) {detail_sum}"
        return True, None


@dataclass
class InflationInfo:
    """Protocol-wide inflation reserve."""
    reserved_amount: int = 0
    recorded_supply: int = 0


@dataclass
class UnlockResult:
    """Payout of a successful unlock."""
    principal: int
    inflation_protection: int
    burned_derivative: int


class DerivativeLedger(Ledger):
    """vePLN ledger. Transfers must touch the lock pool or the manager."""

    def __init__(self, pool_address: str, manager_address: str, strict: bool = False):
        super().__init__("vePLN", strict=strict)
        self.pool_address = pool_address
        self.manager_address = manager_address

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        allowed = {self.pool_address, self.manager_address}
        if sender not in allowed and recipient not in allowed:
            raise UnauthorizedTransferError(sender, recipient)
        super().transfer(sender, recipient, amount)


class LockAccounting:
    """Lock records and inflation reserve mediating PLN and vePLN."""

    def __init__(
        self,
        base_token: Ledger,
        clock,
        manager_address: str,
        mint_authority: Optional[Callable[[str, int], None]] = None,
        address: str = LOCK_POOL_ADDRESS,
        strict: bool = False
    ):
        """
        Initialize lock accounting.

        Args:
            base_token: PLN ledger (read for supply, escrow for principal)
            clock: Time source exposing now()
            manager_address: Custody address allowed to receive vePLN
            mint_authority: Callable minting PLN for inflation reimbursement
                (defaults to minting directly on base_token)
            address: Lock pool address holding escrowed PLN
            strict: Run the vePLN ledger in strict conservation mode
        """
        self.base_token = base_token
        self.clock = clock
        self.address = address
        self.manager_address = manager_address
        self.mint_authority = mint_authority or base_token.mint
        self.token = DerivativeLedger(address, manager_address, strict=strict)
        self.locks: Dict[str, LockRecord] = {}
        self.inflation_info = InflationInfo(
            reserved_amount=0,
            recorded_supply=base_token.get_total_supply()
        )
        base_token.init_wallet(address)
        self.token.init_wallet(address)

    # *** CHECKS ***
    def check_create_lock(self, actor: str, amount: int) -> Optional[SimulationError]:
        if actor in self.locks:
            return LockAlreadyExistsError(actor)
        return self._check_funds(actor, amount)

    def check_increase_lock(self, actor: str, amount: int) -> Optional[SimulationError]:
        if actor not in self.locks:
            return NoExistingLockError(actor)
        return self._check_funds(actor, amount)

    def check_extend_lock(self, actor: str, new_lock_end: int) -> Optional[SimulationError]:
        lock = self.locks.get(actor)
        if lock is None:
            return NoExistingLockError(actor)
        if new_lock_end <= lock.lock_end:
            return LockNotExtendedError(actor, lock.lock_end, new_lock_end)
        return None

    def check_unlock(self, actor: str) -> Optional[SimulationError]:
        lock = self.locks.get(actor)
        if lock is None:
            return NoExistingLockError(actor)
        now = self.clock.now()
        if now < lock.lock_end:
            return LockStillActiveError(actor, lock.lock_end, now)
        if lock.amount == 0:
            return EmptyLockError(actor)
        if self.token.balance_of(actor) == 0:
            return NoLockedBalanceError(actor)
        return None

    def _check_funds(self, actor: str, amount: int) -> Optional[SimulationError]:
        balance = self.base_token.balance_of(actor)
        if balance < amount:
            return InsufficientBalanceError(self.base_token.name, actor, balance, amount)
        return None

    # *** LOCKS ***
    def create_lock(self, actor: str, lock_end: int, amount: int) -> LockRecord:
        """Create a lock and swap amount PLN for vePLN."""
        _require_non_negative(amount)
        error = self.check_create_lock(actor, amount)
        if error is not None:
            raise error

        supply = self.base_token.get_total_supply()
        lock = LockRecord(
            lock_end=lock_end,
            amount=amount,
            lock_detail=[LockDeposit(supply_at_deposit=supply, amount=amount)]
        )
        self.locks[actor] = lock
        self._swap(actor, amount)
        logger.debug("lock created for %s: amount=%d lock_end=%d supply=%d", actor, amount, lock_end, supply)
        return lock

    def increase_lock(self, actor: str, amount: int) -> LockRecord:
        """Top up an existing lock at the current PLN supply."""
        _require_non_negative(amount)
        error = self.check_increase_lock(actor, amount)
        if error is not None:
            raise error

        supply = self.base_token.get_total_supply()
        lock = self.locks[actor]
        lock.lock_detail.append(LockDeposit(supply_at_deposit=supply, amount=amount))
        lock.amount += amount
        self._swap(actor, amount)
        logger.debug("lock increased for %s: amount=%d total=%d supply=%d", actor, amount, lock.amount, supply)
        return lock

    def extend_lock(self, actor: str, new_lock_end: int) -> LockRecord:
        """Push the lock end further out. No token movement."""
        error = self.check_extend_lock(actor, new_lock_end)
        if error is not None:
            raise error

        lock = self.locks[actor]
        lock.lock_end = new_lock_end
        return lock

    def unlock(self, actor: str) -> UnlockResult:
        """
        Release an expired lock.

        Pays back the escrowed principal, mints inflation protection and
        burns the actor's full vePLN balance. The lock record is removed.

        Raises:
            NoExistingLockError, LockStillActiveError, EmptyLockError,
            NoLockedBalanceError
        """
        error = self.check_unlock(actor)
        if error is not None:
            raise error

        self._process_inflation()

        lock = self.locks[actor]
        derivative_balance = self.token.balance_of(actor)
        protection = self.inflation_protection(actor)

        info = self.inflation_info
        info.reserved_amount = max(0, info.reserved_amount - protection)

        # mint inflation protection to the actor
        self.mint_authority(actor, protection)
        # release escrowed principal
        self.base_token.transfer(self.address, actor, lock.amount)
        # burn vePLN
        self.token.burn(actor, derivative_balance)
        del self.locks[actor]

        logger.debug(
            "unlock for %s: principal=%d protection=%d burned=%d reserved=%d",
            actor, lock.amount, protection, derivative_balance, info.reserved_amount
        )
        return UnlockResult(
            principal=lock.amount,
            inflation_protection=protection,
            burned_derivative=derivative_balance
        )

    def inflation_protection(self, actor: str) -> int:
        """
        Inflation protection owed to actor at the current PLN supply.

        Deposits made at a supply above the current one are not compensated.
        """
        lock = self.locks.get(actor)
        if lock is None:
            return 0
        supply = self.base_token.get_total_supply()
        if supply == 0:
            return 0

        protection = 0
        for detail in lock.lock_detail:
            if detail.supply_at_deposit > supply:
                continue
            protection += detail.amount * (supply - detail.supply_at_deposit) // supply
        return protection

    def _process_inflation(self) -> None:
        """Recompute the inflation reserve against the current PLN supply."""
        supply = self.base_token.get_total_supply()
        info = self.inflation_info
        if supply == info.recorded_supply:
            return

        decreased = supply < info.recorded_supply
        delta_supply = abs(supply - info.recorded_supply)
        locked_supply = self.token.get_total_supply() + info.reserved_amount
        unlocked_supply = info.recorded_supply - locked_supply + info.reserved_amount
        if unlocked_supply > 0:
            reserve = delta_supply * locked_supply // unlocked_supply
        else:
            reserve = 0

        if decreased:
            info.reserved_amount += reserve
        else:
            info.reserved_amount -= min(reserve, info.reserved_amount)
        info.recorded_supply = supply

    def _swap(self, actor: str, amount: int) -> None:
        """Swap PLN for vePLN; the PLN is escrowed in the lock pool."""
        self.base_token.transfer(actor, self.address, amount)
        self.token.mint(actor, amount)

    # *** vePLN ***
    def burn_derivative(self, holder: str, amount: int) -> None:
        """Burn vePLN (loss settlement on derivative deposits)."""
        self.token.burn(holder, amount)

    # GETTERS
    def get_lock(self, actor: str) -> Optional[LockRecord]:
        return self.locks.get(actor)

    def has_lock(self, actor: str) -> bool:
        return actor in self.locks

    def has_expired_lock(self, actor: str) -> bool:
        """True when actor has no lock or the lock end has passed."""
        lock = self.locks.get(actor)
        if lock is None:
            return True
        return lock.lock_end <= self.clock.now()

    def get_total_supply(self) -> int:
        return self.token.get_total_supply()

    def balance_of(self, address: str) -> int:
        return self.token.balance_of(address)
