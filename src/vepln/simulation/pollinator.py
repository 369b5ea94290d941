"""Pollinators: simulated actors that lock, manage portfolios and delegate."""

import logging
from enum import Enum
from typing import List, Optional

from ..engine.fixed_point import BASE_WEIGHTS
from ..engine.ledger import TokenType
from ..engine.locking import LockRecord, UnlockResult
from ..engine.portfolio import Portfolio
from ..engine.rewards import WithdrawAmount

logger = logging.getLogger(__name__)


class PollinatorType(Enum):
    MANAGER = "manager"
    DELEGATOR = "delegator"
    STRATEGY = "strategy"


class Pollinator:
    """An actor bound to one test identity.

    Every method applies the same state transitions the protocol would:
    token moves go through the ledgers, settlements through the reward engine.
    """

    def __init__(self, role: PollinatorType, address: str, manager):
        self.role = role
        self.address = address
        self.manager = manager
        # Owner fees minted since the pollinator last acknowledged them
        self.pending_fees = 0

    def __repr__(self) -> str:
        return f"Pollinator({self.role.value}, {self.address})"

    # *** LOCKS ***
    def lock(self, amount: int, lock_end: int) -> LockRecord:
        if lock_end == 0:
            raise ValueError("lock end must be set")
        return self.manager.locking.create_lock(self.address, lock_end, amount)

    def increase_lock(self, amount: int) -> LockRecord:
        return self.manager.locking.increase_lock(self.address, amount)

    def extend_lock(self, new_lock_end: int) -> LockRecord:
        return self.manager.locking.extend_lock(self.address, new_lock_end)

    def unlock(self) -> UnlockResult:
        return self.manager.locking.unlock(self.address)

    # *** PORTFOLIO MANAGER ONLY ***
    def create_portfolio(self, token_type: TokenType, weights: Optional[List[int]] = None,
                         amount: Optional[int] = None) -> Portfolio:
        if amount is None:
            amount = self.random_amount(token_type)
        if weights is None:
            weights = self.random_weights()
        return self.manager.portfolios.add_portfolio(self.address, weights, amount, token_type)

    def rebalance_portfolio(self, token_type: TokenType, weights: Optional[List[int]] = None,
                            amount: Optional[int] = None) -> Portfolio:
        if amount is None:
            amount = self.random_amount(token_type)
        if weights is None:
            weights = self.random_weights()
        return self.manager.portfolios.rebalance_portfolio(self.address, weights, amount, token_type)

    def close_portfolio(self) -> Portfolio:
        """Move the whole allocation into the stable asset."""
        return self.manager.portfolios.rebalance_portfolio(
            self.address, self.close_weights(), 0, TokenType.BASE
        )

    def close_and_withdraw_portfolio(self) -> None:
        """Settle the owner's PLN deposit, close the portfolio, then settle vePLN."""
        portfolio = self.my_portfolio()
        if portfolio is None:
            raise ValueError(f"{self.address} does not manage a portfolio")

        pln_amount = portfolio.deposit_of(self.address, TokenType.BASE)
        ve_pln_amount = portfolio.deposit_of(self.address, TokenType.DERIVATIVE)
        if pln_amount + ve_pln_amount == 0:
            return
        if pln_amount:
            self.withdraw(portfolio, pln_amount, TokenType.BASE)
            self.close_portfolio()
        if ve_pln_amount:
            self.withdraw(portfolio, ve_pln_amount, TokenType.DERIVATIVE)

    # *** DELEGATOR AND MANAGER ***
    def delegate(self, portfolio: Portfolio, token_type: TokenType, amount: Optional[int] = None) -> int:
        if amount is None:
            amount = self.random_amount(token_type)
        if amount == 0:
            return 0
        self.manager.portfolios.delegate(portfolio, self.address, amount, token_type)
        return amount

    def withdraw(self, portfolio: Portfolio, amount: int, token_type: TokenType) -> Optional[WithdrawAmount]:
        """Withdraw amount of deposits and settle the gain or loss on it."""
        settlement = self.manager.rewards.withdraw_amount(portfolio, self.address, amount, token_type)
        self._pay_owner(portfolio, settlement)

        self.manager.portfolios.withdraw_from_portfolio(portfolio, self.address, amount, token_type)
        if settlement.is_rewards:
            self.manager.base_token.mint(self.address, settlement.pollinator_rewards)
        else:
            self._settle_loss(settlement.pollinator_rewards, token_type)
        return settlement

    def withdraw_all(self, token_type: TokenType) -> int:
        """Withdraw every deposit on one track, own portfolio included. Returns the amount withdrawn."""
        withdrawn = 0
        for portfolio in self.manager.portfolios.all_portfolios():
            deposits = portfolio.deposit_of(self.address, token_type)
            if deposits:
                self.withdraw(portfolio, deposits, token_type)
                withdrawn += deposits
        return withdrawn

    def withdraw_rewards(self, portfolio: Portfolio, token_type: TokenType) -> Optional[WithdrawAmount]:
        """Take gains on a track without touching the deposit. No-op on losses."""
        deposits = portfolio.deposit_of(self.address, token_type)
        if deposits == 0:
            return None
        settlement = self.manager.rewards.withdraw_amount(portfolio, self.address, deposits, token_type)
        if not settlement.is_rewards:
            return None

        self._pay_owner(portfolio, settlement)
        if settlement.pollinator_rewards > 0:
            self.manager.base_token.mint(self.address, settlement.pollinator_rewards)
        self.manager.portfolios.reset_position(portfolio, self.address, token_type)
        return settlement

    def _pay_owner(self, portfolio: Portfolio, settlement: WithdrawAmount) -> None:
        if not settlement.owner_rewards:
            return
        owner = self.manager.get_pollinator(portfolio.owner)
        if owner is None:
            return
        self.manager.base_token.mint(owner.address, settlement.owner_rewards)
        owner.add_pending_fees(settlement.owner_rewards)

    def _settle_loss(self, loss: int, token_type: TokenType) -> None:
        if token_type is TokenType.DERIVATIVE:
            balance = self.manager.locking.balance_of(self.address)
            burn = self.manager.locking.burn_derivative
        else:
            balance = self.manager.base_token.balance_of(self.address)
            burn = self.manager.base_token.burn
        if loss > balance:
            logger.debug("loss %d of %s capped at balance %d", loss, self.address, balance)
            loss = balance
        burn(self.address, loss)

    # *** FEES ***
    def add_pending_fees(self, amount: int) -> None:
        self.pending_fees += amount

    def acknowledge_fees(self) -> int:
        """Reset pending fees and return the amount acknowledged."""
        fees = self.pending_fees
        self.pending_fees = 0
        return fees

    # GETTERS
    def my_portfolio(self) -> Optional[Portfolio]:
        return self.manager.portfolios.get_portfolio(self.address)

    def delegated_portfolios(self) -> List[Portfolio]:
        return self.manager.portfolios.delegated_portfolios(self.address)

    # *** HELPERS ***
    def random_amount(self, token_type: TokenType) -> int:
        """Between 0% and 10% of the spendable balance of the track's token."""
        if token_type is TokenType.DERIVATIVE:
            balance = self.manager.locking.balance_of(self.address)
        else:
            balance = self.manager.base_token.balance_of(self.address) - self.pending_fees
        if balance <= 0:
            return 0
        fraction = int(self.manager.rng.integers(0, 101))
        return balance * fraction // 1000

    def random_weights(self) -> List[int]:
        """Random allocation in percent across the tracked assets."""
        n_assets = len(self.manager.get_assets())
        weights = self.manager.rng.multinomial(BASE_WEIGHTS, [1.0 / n_assets] * n_assets)
        return [int(w) for w in weights]

    def close_weights(self) -> List[int]:
        n_assets = len(self.manager.get_assets())
        return [BASE_WEIGHTS] + [0] * (n_assets - 1)
