"""Simulation manager: owns the simulated world and coordinates rounds."""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config.schema import Config
from ..engine.errors import PollinatorCapacityExceededError, SampleSizeInvalidError
from ..engine.fixed_point import DAY, to_wei
from ..engine.ledger import Ledger, TokenType
from ..engine.locking import LockAccounting
from ..engine.portfolio import PortfolioModel
from ..engine.rewards import IssuanceSchedule, IssuanceSegment, RewardEngine
from .actions import DEFAULT_HANDLERS
from .context import SimulationContext
from .driver import PriceSubmissionError, RoundDriver, Step
from .pollinator import Pollinator, PollinatorType

logger = logging.getLogger(__name__)

MANAGER_ADDRESS = "DAO"

PriceConsumer = Callable[[List[int], List[str]], Any]


class ManagerState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STEADY_STATE = "steady_state"


@dataclass
class RoundRecord:
    """What a round ran with, for replaying it."""
    index: int
    seed: int
    timestamp_start: int
    timestamp_end: int
    prices: List[int]
    step_order: List[str] = field(default_factory=list)


class SimulationManager:
    """Container for ledgers, locks, portfolios, rewards, prices and actors."""

    def __init__(
        self,
        config: Config,
        context: Optional[SimulationContext] = None,
        price_consumer: Optional[PriceConsumer] = None,
        handlers: Optional[Dict[Step, Callable]] = None
    ):
        """
        Initialize simulation manager.

        Args:
            config: Simulation configuration
            context: Per-run context (built from config when omitted)
            price_consumer: Called with (prices, assets) at the start of every
                round; raising rejects the round
            handlers: Action handler per step (defaults to the standard set)
        """
        self.config = config
        self.context = context or SimulationContext.from_config(config)
        self.price_consumer = price_consumer
        self.address = MANAGER_ADDRESS
        self.state = ManagerState.UNINITIALIZED
        self.round_index = 0
        self.rounds: List[RoundRecord] = []

        strict = config.simulation.strict_invariants
        self.assets = [asset.symbol for asset in config.assets.items]
        self.prices = [asset.initial_price for asset in config.assets.items]
        self.issuance_schedule = IssuanceSchedule(
            segments=[
                IssuanceSegment(s.max_time, s.offset_x, s.offset_y, s.rate)
                for s in config.issuance_schedule.segments
            ],
            epoch=config.issuance_schedule.epoch
        )

        # engine
        self.base_token = Ledger(
            config.token.name,
            admin=self.context.admin,
            initial_supply=to_wei(config.token.initial_supply, config.token.decimals),
            strict=strict
        )
        self.locking = LockAccounting(
            self.base_token, self.context.clock, MANAGER_ADDRESS, strict=strict
        )
        self.portfolios = PortfolioModel(
            self.base_token,
            self.locking.token,
            self.get_prices,
            MANAGER_ADDRESS,
            config.benchmark.weights
        )
        self.rewards = RewardEngine(
            self.base_token,
            self.locking,
            self.portfolios,
            self.context.clock,
            self.issuance_schedule,
            self.get_prices,
            delegator_fee_percent=config.fees.delegator_fee_percent,
            max_lock_period=config.locks.max_lock_days * DAY
        )
        self.locking.mint_authority = self.rewards.mint_inflation_reimbursement

        # actors
        self.pollinators: List[Pollinator] = []
        self.pollinator_count = 1  # wallet 0 is the admin
        self.delegator_stack: List[Pollinator] = []

        if handlers is None:
            handlers = DEFAULT_HANDLERS
        self.driver = RoundDriver(handlers, self.context.rng)

    @property
    def rng(self):
        return self.context.rng

    @property
    def derivative_token(self) -> Ledger:
        return self.locking.token

    # *** INIT ***
    def init(self) -> None:
        """Seed wallets, distribute funds and create the benchmark. Runs once."""
        if self.state is not ManagerState.UNINITIALIZED:
            return

        for ledger in (self.base_token, self.derivative_token):
            ledger.init_wallet(self.address)
            ledger.init_wallet(self.locking.address)
            for wallet in self.context.wallets:
                ledger.init_wallet(wallet)

        admin = self.context.admin
        admin_balance = self.base_token.balance_of(admin)
        dist_amount = admin_balance // len(self.context.wallets) // self.config.actors.distribution_divisor
        for wallet in self.context.wallets[1:]:
            self.base_token.transfer(admin, wallet, dist_amount)

        self.portfolios.create_benchmark_portfolio()
        self.state = ManagerState.INITIALIZED
        logger.info(
            "simulation initialized: %d wallets, %d each, seed=%d",
            len(self.context.wallets), dist_amount, self.context.seed
        )

    # *** EXECUTE ***
    def run_round(self) -> RoundRecord:
        """
        Run every action handler once, in a shuffled order.

        Raises:
            PriceSubmissionError: If the price consumer rejects the prices
            RoundExecutionError: If a handler fails
        """
        self.init()
        self.randomize_delegator_stack()

        prices = self.get_prices()
        assets = self.get_assets()
        timestamp_start = self.get_current_time()
        if self.price_consumer is not None:
            try:
                self.price_consumer(prices, assets)
            except Exception as e:
                raise PriceSubmissionError("price submission rejected", prices, assets) from e

        order = self.driver.execute_round(self)

        record = RoundRecord(
            index=self.round_index,
            seed=self.context.seed,
            timestamp_start=timestamp_start,
            timestamp_end=self.get_current_time(),
            prices=prices,
            step_order=[step.name for step in order]
        )
        self.rounds.append(record)
        self.round_index += 1
        self.state = ManagerState.STEADY_STATE
        logger.info("round %d complete: order=%s", record.index, record.step_order)
        return record

    # *** CREATE ***
    def new_pollinator(self, role: PollinatorType) -> Pollinator:
        self.init()
        available = len(self.context.wallets)
        if self.pollinator_count >= available:
            raise PollinatorCapacityExceededError(len(self.pollinators) + 1, available - 1)

        pollinator = Pollinator(role, self.context.wallets[self.pollinator_count], self)
        self.pollinators.append(pollinator)
        self.pollinator_count += 1
        return pollinator

    # SETTERS
    def set_prices(self, prices: Sequence[int]) -> None:
        if len(prices) != len(self.assets):
            raise ValueError(f"expected {len(self.assets)} prices, got {len(prices)}")
        if any(p <= 0 for p in prices):
            raise ValueError("prices must be positive")
        self.prices = list(prices)

    def change_prices(self) -> List[int]:
        """Random walk of every non-stable price by up to max_price_change_permille."""
        bound = self.config.assets.max_price_change_permille
        for i in range(1, len(self.prices)):
            change = int(self.rng.integers(0, bound)) if bound else 0
            delta = self.prices[i] * change // 1000
            if self.rng.random() > 0.5:
                self.prices[i] += delta
            else:
                self.prices[i] -= delta
        return self.get_prices()

    def advance_time(self, seconds: int) -> int:
        return self.context.clock.advance(seconds)

    # GETTERS
    def get_current_time(self) -> int:
        return self.context.clock.now()

    def get_assets(self) -> List[str]:
        return list(self.assets)

    def get_prices(self) -> List[int]:
        return list(self.prices)

    def get_issuance_schedule(self) -> IssuanceSchedule:
        return self.issuance_schedule

    def get_pollinator(self, address: str) -> Optional[Pollinator]:
        for pollinator in self.pollinators:
            if pollinator.address == address:
                return pollinator
        return None

    def get_portfolio_managers(self) -> List[Pollinator]:
        return [p for p in self.pollinators if p.role is PollinatorType.MANAGER]

    def get_delegators(self) -> List[Pollinator]:
        return [p for p in self.pollinators if p.role is PollinatorType.DELEGATOR]

    def get_delegators_sample(self, percent: float) -> List[Pollinator]:
        """Pop ceil(percent * stack size) delegators off this round's shuffled stack."""
        if not 0 < percent <= 1:
            raise SampleSizeInvalidError(percent)
        sample_size = math.ceil(len(self.delegator_stack) * percent)
        return [self.delegator_stack.pop() for _ in range(sample_size)]

    def randomize_delegator_stack(self) -> None:
        self.delegator_stack = self.get_delegators()
        self.rng.shuffle(self.delegator_stack)

    def snapshot(self) -> Dict[str, Any]:
        """Full engine state, for diffing against an external source of truth."""
        info = self.locking.inflation_info
        return {
            "round": self.round_index,
            "timestamp": self.get_current_time(),
            "prices": self.get_prices(),
            "base_total_supply": self.base_token.get_total_supply(),
            "derivative_total_supply": self.derivative_token.get_total_supply(),
            "reserved_amount": info.reserved_amount,
            "recorded_supply": info.recorded_supply,
            "total_delegated": self.portfolios.get_total_delegated(),
            "benchmark_value": (
                self.portfolios.get_benchmark_value()
                if self.portfolios.benchmark_asset_amounts is not None else 0
            ),
            "base_balances": dict(self.base_token.balances),
            "derivative_balances": dict(self.derivative_token.balances),
            "locks": {
                address: {
                    "lock_end": lock.lock_end,
                    "amount": lock.amount,
                    "lock_detail": [(d.supply_at_deposit, d.amount) for d in lock.lock_detail],
                }
                for address, lock in self.locking.locks.items()
            },
            "portfolios": {
                p.owner: {
                    "value": self.portfolios.current_value(p),
                    "total_deposited": p.total_deposited,
                    "total_balance": p.total_balance,
                    "deposits": {t.value: dict(p.deposits[t]) for t in TokenType},
                }
                for p in self.portfolios.all_portfolios()
            },
        }
