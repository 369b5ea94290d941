"""Module C: Reward Engine - Issuance-limited rewards, lock boost and benchmark-adjusted returns.

Key Concepts:
- Issuance schedule: piecewise linear target supply over time since an epoch,
  target(t) = offset_y + rate * (t - offset_x) within the active segment
- Reward rate: 1e18 while a portfolio's gains fit its share of the allowed
  issuance, scaled down proportionally once they exceed it
- Boost: voting power (lock amount decayed linearly to zero at lock end)
  over the total vePLN supply; applies to the derivative track only
- Returns are measured against a benchmark portfolio reference
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .errors import BenchmarkNotInitializedError
from .fixed_point import BASE_18, BASE_25, MAX_LOCK_PERIOD, calc_value, tdiv
from .ledger import Ledger, TokenType
from .locking import LockAccounting
from .portfolio import Portfolio, PortfolioModel

logger = logging.getLogger(__name__)

ISSUANCE_EPOCH = 1654473600


@dataclass(frozen=True)
class IssuanceSegment:
    """One window of the issuance curve (times are seconds since the epoch)."""
    max_time: int
    offset_x: int
    offset_y: int  # Target supply at offset_x, in wei
    rate: int  # Wei per second


@dataclass
class IssuanceSchedule:
    """Ordered issuance curve segments with strictly increasing max_time."""
    segments: List[IssuanceSegment]
    epoch: int = ISSUANCE_EPOCH

    def __post_init__(self):
        if not self.segments:
            raise ValueError("issuance schedule needs at least one segment")
        for prev, seg in zip(self.segments, self.segments[1:]):
            if seg.max_time <= prev.max_time:
                raise ValueError("issuance segments must have strictly increasing max_time")

    def elapsed(self, now: int) -> int:
        return max(0, now - self.epoch)

    def select_segment(self, now: int) -> IssuanceSegment:
        """Segment whose window [previous.max_time, max_time) contains now.

        Times past the last window stay on the last segment.
        """
        elapsed = self.elapsed(now)
        for segment in self.segments:
            if elapsed < segment.max_time:
                return segment
        return self.segments[-1]

    def evaluate(self, now: int) -> int:
        """Target base token supply at time now."""
        segment = self.select_segment(now)
        return segment.offset_y + segment.rate * (self.elapsed(now) - segment.offset_x)


@dataclass
class PortfolioReturn:
    """Combined return of both deposit tracks (25-decimal fixed point)."""
    value: int
    is_positive: bool
    rewards: int


@dataclass
class TokenReturn:
    """Benchmark-adjusted, boosted return of one track (18-decimal magnitude)."""
    value: int
    is_positive: bool


@dataclass
class WithdrawAmount:
    """
    Settlement of a withdrawal.

    When is_rewards is False, pollinator_rewards is the loss to burn from the
    pollinator and owner_rewards is None.
    """
    owner_rewards: Optional[int]
    pollinator_rewards: int
    is_rewards: bool


class RewardEngine:
    """Reward computations over ledger, lock, portfolio and price state."""

    def __init__(
        self,
        base_token: Ledger,
        locking: LockAccounting,
        portfolios: PortfolioModel,
        clock,
        schedule: IssuanceSchedule,
        price_view: Callable[[], Sequence[int]],
        delegator_fee_percent: int = 20,
        max_lock_period: int = MAX_LOCK_PERIOD
    ):
        """
        Initialize reward engine.

        Args:
            base_token: PLN ledger (supply reads and reimbursement mints)
            locking: Lock accounting (locks, vePLN supply, inflation reserve)
            portfolios: Portfolio model (deposits, balances, benchmark)
            clock: Time source exposing now()
            schedule: Issuance schedule
            price_view: Returns current 18-decimal prices
            delegator_fee_percent: Share of delegator rewards paid to the owner
            max_lock_period: Lock duration giving full voting power, in seconds
        """
        if not 0 <= delegator_fee_percent <= 100:
            raise ValueError(f"delegator fee must be within [0, 100], got {delegator_fee_percent}")
        self.base_token = base_token
        self.locking = locking
        self.portfolios = portfolios
        self.clock = clock
        self.schedule = schedule
        self.price_view = price_view
        self.delegator_fee_percent = delegator_fee_percent
        self.max_lock_period = max_lock_period

    # *** MINTER ***
    def mint_inflation_reimbursement(self, actor: str, amount: int) -> None:
        self.base_token.mint(actor, amount)

    def allowed_inflation(self, portfolio: Portfolio, current_value: int) -> int:
        """
        Reward rate (1e18 = full rewards) allowed by the issuance schedule.

        Args:
            portfolio: Portfolio being withdrawn from
            current_value: Portfolio index value at current prices

        Returns:
            Reward rate in 18-decimal fixed point
        """
        now = self.clock.now()
        target = self.schedule.evaluate(now)
        reserved = self.locking.inflation_info.reserved_amount
        max_allocation = max(0, target - reserved - self.base_token.get_total_supply())

        total_delegated = self.portfolios.get_total_delegated()
        if total_delegated > 0:
            portfolio_ratio = portfolio.total_deposited * BASE_18 // total_delegated
        else:
            portfolio_ratio = 0
        portfolio_allocation = portfolio_ratio * max_allocation // BASE_18
        global_return = tdiv(current_value * portfolio.total_balance, BASE_18) - portfolio.total_deposited

        if global_return <= portfolio_allocation:
            return BASE_18
        return portfolio_allocation * BASE_18 // global_return

    # *** BOOST ***
    def voting_power(self, actor: str) -> int:
        """Lock amount scaled by remaining lock time over the max lock period."""
        lock = self.locking.get_lock(actor)
        if lock is None:
            return 0
        remaining = max(0, lock.lock_end - self.clock.now())
        decay = BASE_18 * remaining // self.max_lock_period
        return lock.amount * decay // BASE_18

    def lock_boost_rate(self, actor: str) -> int:
        lock = self.locking.get_lock(actor)
        if lock is None or lock.amount == 0:
            return 0
        total_locked = self.locking.get_total_supply()
        if total_locked == 0:
            return 0
        return self.voting_power(actor) * BASE_18 // total_locked

    # *** RETURNS ***
    def total_return_for_portfolio(self, portfolio: Portfolio, actor: str) -> PortfolioReturn:
        """Return of actor's combined PLN and vePLN position in portfolio."""
        prev_balance = sum(portfolio.balance_of(actor, t) for t in TokenType)
        total_deposits = sum(portfolio.deposit_of(actor, t) for t in TokenType)
        if prev_balance == 0 or total_deposits == 0:
            return PortfolioReturn(value=0, is_positive=True, rewards=0)

        prev_value = total_deposits * BASE_18 // prev_balance
        current_value = calc_value(portfolio.asset_amounts, self.price_view())
        if current_value >= prev_value:
            ret = current_value * BASE_25 // prev_value - BASE_25
            is_positive = True
        else:
            ret = BASE_25 - current_value * BASE_25 // prev_value
            is_positive = False
        rewards = ret * total_deposits // BASE_25
        return PortfolioReturn(value=ret, is_positive=is_positive, rewards=rewards)

    def per_token_return_for_portfolio(
        self,
        portfolio: Portfolio,
        actor: str,
        token_type: TokenType
    ) -> TokenReturn:
        """
        Benchmark-adjusted return of one deposit track, with lock boost on vePLN.

        Raises:
            BenchmarkNotInitializedError: If actor has deposits but no benchmark reference
        """
        balance = portfolio.balance_of(actor, token_type)
        deposited = portfolio.deposit_of(actor, token_type)
        if deposited == 0:
            return TokenReturn(value=0, is_positive=True)

        current_value = calc_value(portfolio.asset_amounts, self.price_view())
        ret = tdiv(balance * current_value, deposited) - BASE_18
        ret -= self._benchmark_return(portfolio, actor)

        boost = 0
        if token_type is TokenType.DERIVATIVE:
            boost = self.lock_boost_rate(actor)
        # TODO: confirm with product whether losses on vePLN should be amplified by the boost
        ret = tdiv(ret * (BASE_18 + boost), BASE_18)

        if ret < 0:
            return TokenReturn(value=-ret, is_positive=False)
        return TokenReturn(value=ret, is_positive=True)

    def _benchmark_return(self, portfolio: Portfolio, actor: str) -> int:
        prev_ref = portfolio.benchmark_ref.get(actor, 0)
        if not prev_ref:
            raise BenchmarkNotInitializedError(actor)
        current_benchmark = self.portfolios.get_benchmark_value()
        return tdiv((current_benchmark - prev_ref) * BASE_18, prev_ref)

    def withdraw_amount(
        self,
        portfolio: Portfolio,
        actor: str,
        amount: int,
        token_type: TokenType
    ) -> WithdrawAmount:
        """
        Expected settlement for withdrawing amount from one track.

        Losses are charged to the pollinator only. Gains are scaled by the
        allowed issuance rate, then split with the owner for delegators.
        """
        rewards = self.per_token_return_for_portfolio(portfolio, actor, token_type)
        reward = rewards.value * amount // BASE_18
        if not rewards.is_positive:
            return WithdrawAmount(owner_rewards=None, pollinator_rewards=reward, is_rewards=False)

        current_value = calc_value(portfolio.asset_amounts, self.price_view())
        rate = self.allowed_inflation(portfolio, current_value)
        adjusted = reward * rate // BASE_18

        if portfolio.owner == actor:
            result = WithdrawAmount(owner_rewards=None, pollinator_rewards=adjusted, is_rewards=True)
        else:
            fee = self.delegator_fee_percent
            result = WithdrawAmount(
                owner_rewards=adjusted * fee // 100,
                pollinator_rewards=adjusted * (100 - fee) // 100,
                is_rewards=True
            )

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "withdraw estimate for %s in portfolio %d: reward=%d rate=%d owner=%s pollinator=%d",
                actor, portfolio.id, reward, rate, result.owner_rewards, result.pollinator_rewards
            )
        return result
