"""Per-round action handlers.

Each handler takes the simulation manager and drives a group of pollinators
through one kind of activity. Expected conditions (no lock yet, expired
lock, not enough funds) are queried up front instead of caught.
"""

import logging
from typing import Dict, Callable

from ..engine.fixed_point import DAY, ONE_YEAR
from ..engine.ledger import TokenType
from ..engine.portfolio import Portfolio
from .driver import Step
from .pollinator import Pollinator

logger = logging.getLogger(__name__)

LOCK_TERM = ONE_YEAR


# *** HELPERS ***
def lock_or_increase(manager, pollinator: Pollinator, amount: int, lock_term: int = LOCK_TERM) -> bool:
    """
    Lock amount, topping up (and extending if expired) an existing lock.

    Returns:
        True if tokens were locked
    """
    if amount <= 0:
        return False
    locking = manager.locking
    new_lock_end = manager.get_current_time() + lock_term

    if not locking.has_lock(pollinator.address):
        error = locking.check_create_lock(pollinator.address, amount)
        if error is not None:
            logger.debug("skipping lock for %s: %s", pollinator.address, error)
            return False
        pollinator.lock(amount, new_lock_end)
        return True

    error = locking.check_increase_lock(pollinator.address, amount)
    if error is not None:
        logger.debug("skipping lock increase for %s: %s", pollinator.address, error)
        return False
    if locking.has_expired_lock(pollinator.address):
        pollinator.extend_lock(new_lock_end)
    pollinator.increase_lock(amount)
    return True


def random_portfolio(manager) -> Portfolio:
    all_portfolios = manager.portfolios.all_portfolios()
    return all_portfolios[int(manager.rng.integers(0, len(all_portfolios)))]


def take_rewards(manager, pollinator: Pollinator, portfolio: Portfolio, token_type: TokenType) -> int:
    """Withdraw gains on a track if it has any. Returns the pollinator's share."""
    deposits = portfolio.deposit_of(pollinator.address, token_type)
    if deposits == 0:
        return 0
    estimate = manager.rewards.withdraw_amount(portfolio, pollinator.address, deposits, token_type)
    if not estimate.is_rewards or estimate.pollinator_rewards <= 0:
        return 0
    settlement = pollinator.withdraw_rewards(portfolio, token_type)
    return settlement.pollinator_rewards if settlement is not None else 0


# *** HANDLERS ***
def lock_gains_and_redelegate(manager) -> None:
    """Managers lock owner fees earned since the last round and delegate the vePLN to their own portfolio."""
    for pm in manager.get_portfolio_managers():
        fees = pm.acknowledge_fees()
        if fees <= 0:
            continue
        if not lock_or_increase(manager, pm, fees):
            continue
        portfolio = pm.my_portfolio()
        ve_pln_balance = manager.locking.balance_of(pm.address)
        if portfolio is not None and ve_pln_balance:
            pm.delegate(portfolio, TokenType.DERIVATIVE, ve_pln_balance)


def no_lock_delegate_pln(manager) -> None:
    """Sampled delegators take PLN gains and delegate them back into the same portfolio."""
    for pd in manager.get_delegators_sample(manager.config.actors.delegator_sample_percent):
        for portfolio in pd.delegated_portfolios():
            gains = take_rewards(manager, pd, portfolio, TokenType.BASE)
            if gains:
                pd.delegate(portfolio, TokenType.BASE, gains)


def same_lock_delegate_vepln_to_same_portfolio(manager) -> None:
    """Sampled delegators lock PLN gains and delegate the vePLN into the same portfolio."""
    for pd in manager.get_delegators_sample(manager.config.actors.delegator_sample_percent):
        for portfolio in pd.delegated_portfolios():
            gains = take_rewards(manager, pd, portfolio, TokenType.BASE)
            if gains and lock_or_increase(manager, pd, gains):
                pd.delegate(portfolio, TokenType.DERIVATIVE, gains)


def random_lock_delegate_vepln_to_random_portfolio(manager) -> None:
    """Sampled delegators lock a random amount for a random term and delegate it anywhere."""
    if not manager.portfolios.all_portfolios():
        return
    locks = manager.config.locks
    for pd in manager.get_delegators_sample(manager.config.actors.delegator_sample_percent):
        amount = pd.random_amount(TokenType.BASE)
        term = int(manager.rng.integers(locks.min_lock_days, locks.max_lock_days + 1)) * DAY
        if lock_or_increase(manager, pd, amount, lock_term=term):
            pd.delegate(random_portfolio(manager), TokenType.DERIVATIVE, amount)


def time_pass_and_price_change(manager) -> None:
    """Advance the clock, move prices, then pull vePLN out of portfolios and unlock for expired locks."""
    max_days = manager.config.simulation.max_time_step_days
    days = int(manager.rng.integers(0, max_days + 1)) if max_days else 0
    manager.advance_time(days * DAY)
    manager.change_prices()

    locking = manager.locking
    for pollinator in manager.pollinators:
        if not locking.has_lock(pollinator.address) or not locking.has_expired_lock(pollinator.address):
            continue
        pollinator.withdraw_all(TokenType.DERIVATIVE)
        error = locking.check_unlock(pollinator.address)
        if error is not None:
            logger.debug("skipping unlock for %s: %s", pollinator.address, error)
        else:
            result = pollinator.unlock()
            logger.debug("unlocked %s: %s", pollinator.address, result)


def managers_rebalance_close_or_nothing(manager) -> None:
    for pm in manager.get_portfolio_managers():
        if pm.my_portfolio() is None:
            continue
        decision = int(manager.rng.integers(0, 3))
        if decision == 0:
            pm.rebalance_portfolio(TokenType.BASE)
        elif decision == 1:
            pm.close_portfolio()


def delegators_withdraw_delegate_or_nothing(manager) -> None:
    for pd in manager.get_delegators():
        decision = int(manager.rng.integers(0, 3))
        if decision == 0:
            for portfolio in pd.delegated_portfolios():
                take_rewards(manager, pd, portfolio, TokenType.BASE)
                take_rewards(manager, pd, portfolio, TokenType.DERIVATIVE)
        elif decision == 1 and manager.portfolios.all_portfolios():
            pd.delegate(random_portfolio(manager), TokenType.BASE)


DEFAULT_HANDLERS: Dict[Step, Callable] = {
    Step.LOCK_GAINS_AND_REDELEGATE: lock_gains_and_redelegate,
    Step.NO_LOCK_DELEGATE_PLN: no_lock_delegate_pln,
    Step.SAME_LOCK_DELEGATE_VEPLN_TO_SAME_PORTFOLIO: same_lock_delegate_vepln_to_same_portfolio,
    Step.RANDOM_LOCK_DELEGATE_VEPLN_TO_RANDOM_PORTFOLIO: random_lock_delegate_vepln_to_random_portfolio,
    Step.TIME_PASS_AND_PRICE_CHANGE: time_pass_and_price_change,
    Step.MANAGERS_REBALANCE_CLOSE_OR_NOTHING: managers_rebalance_close_or_nothing,
    Step.DELEGATORS_WITHDRAW_DELEGATE_OR_NOTHING: delegators_withdraw_delegate_or_nothing,
}
