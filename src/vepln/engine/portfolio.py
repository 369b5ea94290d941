"""Module D: Portfolio Model - Deposited and delegated balances per portfolio.

A portfolio's index value starts at 1e18 and moves with the prices of its
asset allocation. Depositing `amount` at index `value` credits
`amount * 1e18 / value` balance units, so balance * value / 1e18 is the
position's current worth.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .errors import BenchmarkNotInitializedError, SimulationError
from .fixed_point import BASE_18, BASE_WEIGHTS, calc_value, calc_weighted_average
from .ledger import Ledger, TokenType


def _per_token() -> Dict[TokenType, Dict[str, int]]:
    return {TokenType.BASE: {}, TokenType.DERIVATIVE: {}}


@dataclass
class Portfolio:
    """Portfolio state (portfolio scope and per-pollinator scope)."""
    id: int
    owner: str
    weights: List[int]
    asset_amounts: List[int]
    value: int = BASE_18
    total_deposited: int = 0
    total_balance: int = 0
    balances: Dict[TokenType, Dict[str, int]] = field(default_factory=_per_token)
    deposits: Dict[TokenType, Dict[str, int]] = field(default_factory=_per_token)
    benchmark_ref: Dict[str, int] = field(default_factory=dict)

    def balance_of(self, address: str, token_type: TokenType) -> int:
        return self.balances[token_type].get(address, 0)

    def deposit_of(self, address: str, token_type: TokenType) -> int:
        return self.deposits[token_type].get(address, 0)

    def has_position(self, address: str) -> bool:
        return any(address in self.balances[t] for t in TokenType)


@dataclass
class PositionView:
    """Read view of one delegator's position, shaped like the on-chain getter."""
    asset_amounts: List[int]
    base_balance: int = 0
    derivative_balance: int = 0
    deposit_base: int = 0
    deposit_derivative: int = 0

    @property
    def balance(self) -> int:
        return self.base_balance + self.derivative_balance


class PortfolioModel:
    """Deposits, delegations and benchmark references for all portfolios."""

    def __init__(
        self,
        base_token: Ledger,
        derivative_token: Ledger,
        price_view: Callable[[], Sequence[int]],
        custody_address: str,
        benchmark_weights: Sequence[int]
    ):
        """
        Initialize portfolio model.

        Args:
            base_token: PLN ledger
            derivative_token: vePLN ledger
            price_view: Returns current 18-decimal prices, one per asset
            custody_address: Address holding all delegated tokens
            benchmark_weights: Benchmark allocation in percent per asset
        """
        self.base_token = base_token
        self.derivative_token = derivative_token
        self.price_view = price_view
        self.custody_address = custody_address
        self.benchmark_weights = list(benchmark_weights)
        self.benchmark_asset_amounts: Optional[List[int]] = None
        self.portfolios: Dict[str, Portfolio] = {}
        self.portfolio_count = 0
        self._total_delegated = 0

    # *** BENCHMARK ***
    def create_benchmark_portfolio(self) -> None:
        """Fix benchmark allocations at one unit of value at current prices."""
        if self.benchmark_asset_amounts is None:
            self.benchmark_asset_amounts = self.calc_asset_amounts(self.benchmark_weights, BASE_18)

    def get_benchmark_value(self) -> int:
        if self.benchmark_asset_amounts is None:
            raise BenchmarkNotInitializedError()
        return calc_value(self.benchmark_asset_amounts, self.price_view())

    # *** PORTFOLIO ***
    def add_portfolio(
        self,
        owner: str,
        weights: Sequence[int],
        initial_amount: int,
        token_type: TokenType
    ) -> Portfolio:
        """Create the owner's portfolio and deposit the initial amount."""
        if owner in self.portfolios:
            raise SimulationError(f"{owner} cannot create another portfolio")

        portfolio = Portfolio(
            id=self.portfolio_count,
            owner=owner,
            weights=list(weights),
            asset_amounts=self.calc_asset_amounts(weights, BASE_18),
            benchmark_ref={owner: self.get_benchmark_value()}
        )
        for token in TokenType:
            portfolio.balances[token][owner] = 0
            portfolio.deposits[token][owner] = 0
        self.portfolios[owner] = portfolio
        self.portfolio_count += 1
        self.deposit_into_portfolio(portfolio, owner, initial_amount, token_type)
        return portfolio

    def rebalance_portfolio(
        self,
        owner: str,
        weights: Sequence[int],
        amount: int,
        token_type: TokenType
    ) -> Portfolio:
        """Mark the index to market, optionally deposit, then reallocate."""
        portfolio = self.portfolios.get(owner)
        if portfolio is None:
            raise SimulationError(f"{owner} does not own a portfolio")

        portfolio.value = self.current_value(portfolio)
        self._update_benchmark_ref(portfolio, owner, amount)
        self.deposit_into_portfolio(portfolio, owner, amount, token_type)
        portfolio.weights = list(weights)
        portfolio.asset_amounts = self.calc_asset_amounts(portfolio.weights, portfolio.value)
        return portfolio

    def delegate(self, portfolio: Portfolio, actor: str, amount: int, token_type: TokenType) -> None:
        """Delegate tokens to a portfolio, updating the benchmark reference first."""
        self._update_benchmark_ref(portfolio, actor, amount)
        self.deposit_into_portfolio(portfolio, actor, amount, token_type)

    def deposit_into_portfolio(
        self,
        portfolio: Portfolio,
        actor: str,
        amount: int,
        token_type: TokenType
    ) -> None:
        if amount == 0:
            return

        value = self.current_value(portfolio)
        balance_increase = amount * BASE_18 // value
        self._token(token_type).transfer(actor, self.custody_address, amount)

        # pollinator scope
        portfolio.deposits[token_type][actor] = portfolio.deposit_of(actor, token_type) + amount
        portfolio.balances[token_type][actor] = portfolio.balance_of(actor, token_type) + balance_increase
        # portfolio scope
        portfolio.total_deposited += amount
        portfolio.total_balance += balance_increase
        # global scope
        self._total_delegated += amount

    def withdraw_from_portfolio(
        self,
        portfolio: Portfolio,
        actor: str,
        amount: int,
        token_type: TokenType
    ) -> None:
        """Return deposited tokens to actor, reducing balance pro rata."""
        if amount == 0:
            return

        prev_deposits = portfolio.deposit_of(actor, token_type)
        prev_balance = portfolio.balance_of(actor, token_type)
        if amount > prev_deposits:
            raise SimulationError(
                f"withdraw of {amount} exceeds deposits {prev_deposits} of {actor}"
            )
        balance_decrease = amount * prev_balance // prev_deposits
        self._token(token_type).transfer(self.custody_address, actor, amount)

        portfolio.deposits[token_type][actor] = prev_deposits - amount
        portfolio.balances[token_type][actor] = prev_balance - balance_decrease
        portfolio.total_deposited -= amount
        portfolio.total_balance -= balance_decrease
        self._total_delegated -= amount

    def reset_position(self, portfolio: Portfolio, actor: str, token_type: TokenType) -> None:
        """Re-base a position after its rewards were paid out."""
        portfolio.benchmark_ref[actor] = self.get_benchmark_value()
        deposits = portfolio.deposit_of(actor, token_type)
        prev_balance = portfolio.balance_of(actor, token_type)
        new_balance = deposits * BASE_18 // self.current_value(portfolio)
        portfolio.balances[token_type][actor] = new_balance
        portfolio.total_balance += new_balance - prev_balance

    def _update_benchmark_ref(self, portfolio: Portfolio, actor: str, deposit_amount: int) -> None:
        prev_deposits = sum(portfolio.deposit_of(actor, t) for t in TokenType)
        if prev_deposits == 0 and deposit_amount == 0:
            return
        prev_ref = portfolio.benchmark_ref.get(actor, 0)
        if prev_ref == 0 and prev_deposits != 0:
            raise BenchmarkNotInitializedError(actor)
        portfolio.benchmark_ref[actor] = calc_weighted_average(
            prev_deposits, deposit_amount, prev_ref, self.get_benchmark_value()
        )

    # *** CALCULATIONS ***
    def calc_asset_amounts(self, weights: Sequence[int], value: int) -> List[int]:
        prices = self.price_view()
        amounts = []
        for weight, price in zip(weights, prices):
            if weight != 0 and price != 0:
                amounts.append(value * weight * BASE_18 // price // BASE_WEIGHTS)
            else:
                amounts.append(0)
        return amounts

    def current_value(self, portfolio: Portfolio) -> int:
        return calc_value(portfolio.asset_amounts, self.price_view())

    def _token(self, token_type: TokenType) -> Ledger:
        if token_type is TokenType.DERIVATIVE:
            return self.derivative_token
        return self.base_token

    # GETTERS
    def get_total_delegated(self) -> int:
        return self._total_delegated

    def get_portfolio(self, owner: str) -> Optional[Portfolio]:
        return self.portfolios.get(owner)

    def get_position(self, owner: str, delegator: str) -> PositionView:
        portfolio = self.portfolios.get(owner)
        if portfolio is None:
            return PositionView(asset_amounts=[0])
        return PositionView(
            asset_amounts=list(portfolio.asset_amounts),
            base_balance=portfolio.balance_of(delegator, TokenType.BASE),
            derivative_balance=portfolio.balance_of(delegator, TokenType.DERIVATIVE),
            deposit_base=portfolio.deposit_of(delegator, TokenType.BASE),
            deposit_derivative=portfolio.deposit_of(delegator, TokenType.DERIVATIVE),
        )

    def all_portfolios(self) -> List[Portfolio]:
        return list(self.portfolios.values())

    def delegated_portfolios(self, actor: str) -> List[Portfolio]:
        """Portfolios (other than actor's own) where actor holds a position."""
        return [
            p for p in self.portfolios.values()
            if p.owner != actor and p.has_position(actor)
        ]
