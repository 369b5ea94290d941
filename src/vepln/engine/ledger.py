"""Module A: Token Ledger - Fungible balance accounting with conservation checks."""

from enum import Enum
from typing import Dict, List, Optional

from .errors import InsufficientBalanceError, InvariantViolationError


class TokenType(Enum):
    """The two deposit tracks of the protocol."""
    BASE = "base"  # PLN
    DERIVATIVE = "derivative"  # vePLN, locked PLN


class Ledger:
    """Balance ledger for one fungible token.

    Conservation Identity:
    total_supply = sum(balances.values())

    Every operation validates before it mutates, so a failed call leaves
    the ledger untouched.
    """

    def __init__(
        self,
        name: str,
        admin: Optional[str] = None,
        initial_supply: int = 0,
        strict: bool = False
    ):
        """
        Initialize ledger.

        Args:
            name: Ledger name used in errors and snapshots
            admin: Address that owns the initial supply
            initial_supply: Initial supply in smallest units
            strict: Re-validate conservation after every mutation
        """
        if initial_supply < 0:
            raise ValueError(f"{name}: initial supply must be non-negative")
        if initial_supply and admin is None:
            raise ValueError(f"{name}: initial supply requires an admin address")

        self.name = name
        self.strict = strict
        self.total_supply = initial_supply
        self.balances: Dict[str, int] = {}
        if admin is not None:
            self.balances[admin] = initial_supply

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move amount from sender to recipient. Total supply is unchanged."""
        self._check_amount(amount)
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(self.name, sender, balance, amount)

        self.balances[sender] = balance - amount
        self.balances[recipient] = self.balance_of(recipient) + amount
        self._after_mutation()

    def mint(self, recipient: str, amount: int) -> None:
        """Create amount new tokens for recipient. Supply policy is external."""
        self._check_amount(amount)
        self.total_supply += amount
        self.balances[recipient] = self.balance_of(recipient) + amount
        self._after_mutation()

    def burn(self, holder: str, amount: int) -> None:
        """Destroy amount tokens held by holder."""
        self._check_amount(amount)
        balance = self.balance_of(holder)
        if balance < amount:
            raise InsufficientBalanceError(self.name, holder, balance, amount)

        self.total_supply -= amount
        self.balances[holder] = balance - amount
        self._after_mutation()

    # GETTERS
    def balance_of(self, address: str) -> int:
        return self.balances.get(address, 0)

    def get_total_supply(self) -> int:
        return self.total_supply

    def holders(self) -> List[str]:
        """Addresses with a non-zero balance."""
        return [address for address, balance in self.balances.items() if balance > 0]

    # HELPERS
    def init_wallet(self, address: str) -> None:
        """Seed a zero entry for address. No-op for known addresses."""
        self.balances.setdefault(address, 0)

    def validate_conservation(self) -> tuple[bool, Optional[str]]:
        """
        Validate that balances sum to total supply and none is negative.

        Returns:
            (is_valid, error_message)
        """
        negative = [(a, b) for a, b in self.balances.items() if b < 0]
        if negative:
            address, balance = negative[0]
            return False, f"{self.name}: negative balance for {address}: {balance}"

        computed_total = sum(self.balances.values())
        if computed_total != self.total_supply:
            return False, (
                f"{self.name}: conservation violation: "
                f"total_supply={self.total_supply}, sum(balances)={computed_total}, "
                f"diff={self.total_supply - computed_total}"
            )
        return True, None

    def _check_amount(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"{self.name}: amount must be non-negative, got {amount}")

    def _after_mutation(self) -> None:
        if not self.strict:
            return
        is_valid, error_msg = self.validate_conservation()
        if not is_valid:
            raise InvariantViolationError(error_msg)
