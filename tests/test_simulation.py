"""Tests for the simulation manager, round driver, pollinators and runner."""

import pytest
import sys
import os

import numpy as np

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from vepln.config.loader import load_config
from vepln.engine.errors import (
    PollinatorCapacityExceededError,
    SampleSizeInvalidError,
    SimulationError,
)
from vepln.engine.fixed_point import BASE_18, ONE_YEAR, to_wei
from vepln.engine.ledger import TokenType
from vepln.engine.locking import LockAccounting
from vepln.simulation.actions import time_pass_and_price_change
from vepln.simulation.context import SimulationClock, SimulationContext, wallet_address
from vepln.simulation.driver import (
    PriceSubmissionError,
    RoundDriver,
    RoundExecutionError,
    Step,
)
from vepln.simulation.manager import ManagerState, SimulationManager
from vepln.simulation.pollinator import PollinatorType
from vepln.simulation.runner import SimulationRunner

INITIAL_PRICES = [BASE_18, 10 * BASE_18, 10 * BASE_18, 10 * BASE_18]
WALLET_FUNDS = to_wei(47_000)


@pytest.fixture
def config():
    return load_config()


def make_world(config):
    """One manager with a portfolio and one delegator, no handlers."""
    manager = SimulationManager(config, handlers={})
    manager.init()
    pm = manager.new_pollinator(PollinatorType.MANAGER)
    portfolio = pm.create_portfolio(TokenType.BASE, weights=[0, 10, 20, 70], amount=to_wei(1000))
    pd = manager.new_pollinator(PollinatorType.DELEGATOR)
    pd.delegate(portfolio, TokenType.BASE, to_wei(1000))
    return manager, pm, pd, portfolio


class TestClockAndContext:
    """Explicit time and per-run randomness."""

    def test_clock_moves_forward_only(self):
        clock = SimulationClock(100)
        assert clock.advance(50) == 150
        assert clock.set(200) == 200
        with pytest.raises(ValueError):
            clock.advance(-1)
        with pytest.raises(ValueError):
            clock.set(199)
        assert clock.now() == 200

    def test_wallet_addresses(self):
        assert wallet_address(1) == "0x" + "0" * 39 + "1"
        context = SimulationContext.create(seed=1, num_wallets=3, start_timestamp=0)
        assert context.admin == wallet_address(0)
        assert len(set(context.wallets)) == 3

    def test_context_seed_override(self, config):
        context = SimulationContext.from_config(config, seed=99)
        assert context.seed == 99
        assert context.clock.now() == config.simulation.start_timestamp
        assert SimulationContext.from_config(config).seed == config.simulation.random_seed


class TestManagerInit:
    """Wallet seeding, fund distribution and the benchmark."""

    def test_init_distributes_funds(self, config):
        manager = SimulationManager(config, handlers={})
        manager.init()

        wallets = manager.context.wallets
        assert manager.state is ManagerState.INITIALIZED
        for wallet in wallets[1:]:
            assert manager.base_token.balance_of(wallet) == WALLET_FUNDS
        assert manager.base_token.balance_of(wallets[0]) == to_wei(94_000_000) - 19 * WALLET_FUNDS
        assert manager.portfolios.get_benchmark_value() == BASE_18

    def test_init_is_idempotent(self, config):
        manager = SimulationManager(config, handlers={})
        manager.init()
        before = manager.snapshot()
        manager.init()
        assert manager.snapshot() == before

    def test_snapshot_before_init(self, config):
        manager = SimulationManager(config, handlers={})
        snapshot = manager.snapshot()
        assert snapshot["benchmark_value"] == 0
        assert snapshot["round"] == 0


class TestActors:
    """Pollinator creation and delegator sampling."""

    def test_capacity_exceeded(self, config):
        manager = SimulationManager(config, handlers={})
        for _ in range(19):
            manager.new_pollinator(PollinatorType.DELEGATOR)
        with pytest.raises(PollinatorCapacityExceededError) as exc_info:
            manager.new_pollinator(PollinatorType.DELEGATOR)
        assert exc_info.value.requested == 20
        assert exc_info.value.available == 19
        assert len(manager.pollinators) == 19

    def test_roles_and_lookup(self, config):
        manager, pm, pd, portfolio = make_world(config)
        assert manager.get_portfolio_managers() == [pm]
        assert manager.get_delegators() == [pd]
        assert manager.get_pollinator(pd.address) is pd
        assert manager.get_pollinator("nobody") is None

    def test_delegator_sample(self, config):
        manager = SimulationManager(config, handlers={})
        delegators = [manager.new_pollinator(PollinatorType.DELEGATOR) for _ in range(8)]
        manager.randomize_delegator_stack()

        sample = manager.get_delegators_sample(0.5)
        assert len(sample) == 4
        assert len(manager.delegator_stack) == 4
        assert set(sample) | set(manager.delegator_stack) == set(delegators)

        assert len(manager.get_delegators_sample(0.1)) == 1

    def test_invalid_sample_size(self, config):
        manager = SimulationManager(config, handlers={})
        for percent in (0, -0.5, 1.5):
            with pytest.raises(SampleSizeInvalidError):
                manager.get_delegators_sample(percent)


class TestRoundDriver:
    """Seeded permutation of the action handlers."""

    def _recording_handlers(self, calls):
        return {step: (lambda manager, step=step: calls.append(step)) for step in Step}

    def test_every_step_runs_once(self):
        calls = []
        driver = RoundDriver(self._recording_handlers(calls), np.random.default_rng(3))
        for _ in range(5):
            calls.clear()
            order = driver.execute_round(None)
            assert calls == order
            assert sorted(order) == list(Step)

    def test_same_seed_same_orders(self):
        first = RoundDriver(self._recording_handlers([]), np.random.default_rng(11))
        second = RoundDriver(self._recording_handlers([]), np.random.default_rng(11))
        assert [first.shuffle_steps() for _ in range(5)] == [second.shuffle_steps() for _ in range(5)]

    def test_shuffle_keeps_stack_order_between_rounds(self):
        """Each round shuffles the previous round's order in place."""
        driver = RoundDriver(self._recording_handlers([]), np.random.default_rng(0))
        order = driver.shuffle_steps()
        assert driver.step_stack == order
        assert sorted(driver.shuffle_steps()) == list(Step)

    def test_failing_step_wrapped_with_cause(self, config):
        """A failing handler aborts the round with the step, prices and assets."""
        def boom(manager):
            raise SimulationError("boom")

        manager = SimulationManager(config, handlers={Step.TIME_PASS_AND_PRICE_CHANGE: boom})
        with pytest.raises(RoundExecutionError) as exc_info:
            manager.run_round()
        error = exc_info.value
        assert error.step is Step.TIME_PASS_AND_PRICE_CHANGE
        assert error.prices == INITIAL_PRICES
        assert error.assets == ["USDC", "WBTC", "WETH", "LINK"]
        assert isinstance(error.__cause__, SimulationError)
        assert manager.rounds == []


class TestRunRound:
    """Round bookkeeping and the price consumer."""

    def test_price_rejection_envelope(self, config):
        def reject(prices, assets):
            raise ValueError("oracle down")

        manager = SimulationManager(config, price_consumer=reject, handlers={})
        with pytest.raises(PriceSubmissionError) as exc_info:
            manager.run_round()
        error = exc_info.value
        assert error.prices == INITIAL_PRICES
        assert error.assets == ["USDC", "WBTC", "WETH", "LINK"]
        assert isinstance(error.__cause__, ValueError)
        assert manager.round_index == 0

    def test_price_consumer_sees_prices(self, config):
        seen = []
        manager = SimulationManager(config, price_consumer=lambda p, a: seen.append((p, a)), handlers={})
        record = manager.run_round()
        assert seen == [(INITIAL_PRICES, ["USDC", "WBTC", "WETH", "LINK"])]
        assert record.index == 0
        assert record.step_order == []
        assert manager.state is ManagerState.STEADY_STATE

    def test_default_round_runs_all_steps(self, config):
        runner = SimulationRunner(config)
        manager = runner.build(random_seed=3)
        record = manager.run_round()
        assert sorted(record.step_order) == sorted(step.name for step in Step)
        assert record.timestamp_end >= record.timestamp_start

    def test_change_prices_keeps_stable_asset(self, config):
        manager = SimulationManager(config, handlers={})
        for _ in range(20):
            prices = manager.change_prices()
            assert prices[0] == BASE_18
            assert all(p > 0 for p in prices)

    def test_set_prices_validation(self, config):
        manager = SimulationManager(config, handlers={})
        with pytest.raises(ValueError):
            manager.set_prices([BASE_18])
        with pytest.raises(ValueError):
            manager.set_prices([BASE_18, 0, 1, 1])


class TestPollinator:
    """Deposits, withdrawals and owner fees."""

    def test_delegator_withdraw_with_gains(self, config):
        manager, pm, pd, portfolio = make_world(config)
        manager.set_prices([BASE_18, 10 * BASE_18, 10 * BASE_18, 20 * BASE_18])
        manager.advance_time(ONE_YEAR)

        settlement = pd.withdraw(portfolio, to_wei(1000), TokenType.BASE)
        assert settlement.owner_rewards == to_wei(60)
        assert settlement.pollinator_rewards == to_wei(240)
        assert manager.base_token.balance_of(pd.address) == WALLET_FUNDS + to_wei(240)
        assert manager.base_token.balance_of(pm.address) == WALLET_FUNDS - to_wei(1000) + to_wei(60)
        assert portfolio.deposit_of(pd.address, TokenType.BASE) == 0
        assert manager.portfolios.get_total_delegated() == to_wei(1000)
        assert manager.base_token.balance_of(manager.address) == to_wei(1000)

        assert pm.pending_fees == to_wei(60)
        assert pm.acknowledge_fees() == to_wei(60)
        assert pm.pending_fees == 0

    def test_delegator_withdraw_with_loss(self, config):
        manager, pm, pd, portfolio = make_world(config)
        supply = manager.base_token.get_total_supply()
        manager.set_prices([BASE_18, 10 * BASE_18, 10 * BASE_18, 5 * BASE_18])

        settlement = pd.withdraw(portfolio, to_wei(1000), TokenType.BASE)
        assert not settlement.is_rewards
        assert manager.base_token.balance_of(pd.address) == WALLET_FUNDS - to_wei(150)
        assert manager.base_token.get_total_supply() == supply - to_wei(150)
        assert pm.pending_fees == 0

    def test_withdraw_rewards_rebases_position(self, config):
        manager, pm, pd, portfolio = make_world(config)
        manager.set_prices([BASE_18, 10 * BASE_18, 10 * BASE_18, 20 * BASE_18])
        manager.advance_time(ONE_YEAR)

        settlement = pd.withdraw_rewards(portfolio, TokenType.BASE)
        assert settlement.pollinator_rewards == to_wei(240)
        assert portfolio.deposit_of(pd.address, TokenType.BASE) == to_wei(1000)
        assert portfolio.balance_of(pd.address, TokenType.BASE) == to_wei(1000) * BASE_18 // (17 * BASE_18 // 10)
        assert portfolio.benchmark_ref[pd.address] == 14 * BASE_18 // 10

        # nothing left to take at unchanged prices
        assert pd.withdraw_rewards(portfolio, TokenType.BASE) is None

    def test_withdraw_rewards_noop_on_loss(self, config):
        manager, pm, pd, portfolio = make_world(config)
        manager.set_prices([BASE_18, 10 * BASE_18, 10 * BASE_18, 5 * BASE_18])
        balance = portfolio.balance_of(pd.address, TokenType.BASE)

        assert pd.withdraw_rewards(portfolio, TokenType.BASE) is None
        assert portfolio.balance_of(pd.address, TokenType.BASE) == balance
        assert manager.base_token.balance_of(pd.address) == WALLET_FUNDS - to_wei(1000)

    def test_close_and_withdraw_portfolio(self, config):
        """The owner's PLN is settled and the allocation moved to the stable asset."""
        manager, pm, pd, portfolio = make_world(config)
        manager.set_prices([BASE_18, 10 * BASE_18, 10 * BASE_18, 20 * BASE_18])
        manager.advance_time(ONE_YEAR)

        pm.close_and_withdraw_portfolio()
        assert manager.base_token.balance_of(pm.address) == WALLET_FUNDS + to_wei(300)
        assert portfolio.weights == [100, 0, 0, 0]
        assert portfolio.asset_amounts == [17 * BASE_18 // 10, 0, 0, 0]

        manager.set_prices(INITIAL_PRICES)
        assert manager.portfolios.current_value(portfolio) == 17 * BASE_18 // 10

    def test_position_view(self, config):
        manager, pm, pd, portfolio = make_world(config)
        position = manager.portfolios.get_position(pm.address, pd.address)
        assert position.deposit_base == to_wei(1000)
        assert position.deposit_derivative == 0
        assert position.balance == to_wei(1000)
        assert position.asset_amounts == portfolio.asset_amounts

        missing = manager.portfolios.get_position("nobody", pd.address)
        assert missing.balance == 0

    def test_delegated_portfolios_exclude_own(self, config):
        manager, pm, pd, portfolio = make_world(config)
        assert pd.delegated_portfolios() == [portfolio]
        assert pm.delegated_portfolios() == []
        assert pm.my_portfolio() is portfolio

    def test_random_helpers(self, config):
        manager, pm, pd, portfolio = make_world(config)
        for _ in range(10):
            weights = pd.random_weights()
            assert len(weights) == 4
            assert sum(weights) == 100
            amount = pd.random_amount(TokenType.BASE)
            assert 0 <= amount <= manager.base_token.balance_of(pd.address) // 10
        assert pd.random_amount(TokenType.DERIVATIVE) == 0

    def test_lock_requires_end(self, config):
        manager, pm, pd, portfolio = make_world(config)
        with pytest.raises(ValueError):
            pd.lock(to_wei(1), 0)

    def test_withdraw_all_derivative(self, config):
        """Every vePLN deposit comes back, own portfolio included."""
        manager, pm, pd, portfolio = make_world(config)
        now = manager.get_current_time()
        for pollinator in (pm, pd):
            pollinator.lock(to_wei(500), now + 10)
            pollinator.delegate(portfolio, TokenType.DERIVATIVE, to_wei(500))

        assert pd.withdraw_all(TokenType.DERIVATIVE) == to_wei(500)
        assert pm.withdraw_all(TokenType.DERIVATIVE) == to_wei(500)
        assert portfolio.deposit_of(pd.address, TokenType.DERIVATIVE) == 0
        assert portfolio.deposit_of(pm.address, TokenType.DERIVATIVE) == 0
        assert manager.locking.balance_of(pd.address) == to_wei(500)
        assert manager.derivative_token.balance_of(manager.address) == 0
        assert pd.withdraw_all(TokenType.DERIVATIVE) == 0

    def test_time_step_releases_expired_delegated_lock(self, config):
        """Expired locks are unlocked even when their vePLN sits in a portfolio."""
        manager, pm, pd, portfolio = make_world(config)
        pd.lock(to_wei(1000), manager.get_current_time() + 10)
        pd.delegate(portfolio, TokenType.DERIVATIVE, to_wei(1000))
        manager.advance_time(11)

        time_pass_and_price_change(manager)

        assert not manager.locking.has_lock(pd.address)
        assert manager.locking.balance_of(pd.address) == 0
        assert portfolio.deposit_of(pd.address, TokenType.DERIVATIVE) == 0
        assert manager.derivative_token.get_total_supply() == 0
        info = manager.locking.inflation_info
        assert to_wei(94_000_000) <= info.recorded_supply <= manager.base_token.get_total_supply()
        assert info.reserved_amount >= 0

    def test_time_step_keeps_active_lock(self, config):
        manager, pm, pd, portfolio = make_world(config)
        pd.lock(to_wei(1000), manager.get_current_time() + 10 * ONE_YEAR)
        pd.delegate(portfolio, TokenType.DERIVATIVE, to_wei(1000))

        time_pass_and_price_change(manager)

        assert manager.locking.has_lock(pd.address)
        assert portfolio.deposit_of(pd.address, TokenType.DERIVATIVE) == to_wei(1000)


class TestRunner:
    """Full seeded runs."""

    def test_run_is_deterministic(self, config):
        first = SimulationRunner(config).run(num_rounds=3, random_seed=5)
        second = SimulationRunner(config).run(num_rounds=3, random_seed=5)

        assert first.completed
        assert len(first.rounds) == 3
        assert len(first.snapshots) == 3
        assert [r.step_order for r in first.rounds] == [r.step_order for r in second.rounds]
        assert first.final_snapshot == second.final_snapshot
        assert first.config_hash == second.config_hash

    def test_run_keeps_invariants(self, config):
        result = SimulationRunner(config).run(num_rounds=5, random_seed=8)
        assert result.completed
        assert not [w for w in result.warnings if "error: " in w]

    def test_rounds_reach_unlock_and_inflation_processing(self, config, monkeypatch):
        """Seeded runs release locks and move the recorded supply."""
        calls = {"unlock": 0}
        original_unlock = LockAccounting.unlock

        def counting_unlock(self, actor):
            calls["unlock"] += 1
            return original_unlock(self, actor)

        monkeypatch.setattr(LockAccounting, "unlock", counting_unlock)

        initial_supply = to_wei(config.token.initial_supply)
        supply_moved = False
        for seed in range(3):
            result = SimulationRunner(config).run(num_rounds=30, random_seed=seed)
            assert result.completed
            assert not [w for w in result.warnings if "error: " in w]
            supply_moved = supply_moved or any(
                s["recorded_supply"] != initial_supply for s in result.snapshots
            )

        assert calls["unlock"] > 0
        assert supply_moved
