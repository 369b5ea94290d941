"""Fixed-point integer helpers shared by every engine module.

All token quantities are plain Python ints standing in for uint256 values.
Division follows on-chain big-number semantics: it truncates toward zero,
which differs from Python's floor division once a value goes negative
(portfolio returns and benchmark returns can).
"""

from typing import Sequence

BASE_8 = 10 ** 8
BASE_10 = 10 ** 10
BASE_18 = BASE_10 * BASE_8
BASE_25 = BASE_18 * 10 ** 7
BASE_WEIGHTS = 100

DAY = 24 * 3600
ONE_YEAR = 365 * DAY
MAX_LOCK_PERIOD = 1405 * DAY
MIN_LOCK_PERIOD = 90 * DAY


def tdiv(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero.

    Raises:
        ZeroDivisionError: If denominator is zero
    """
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def to_wei(tokens: int, decimals: int = 18) -> int:
    """Scale a whole-token amount to its smallest unit."""
    return tokens * 10 ** decimals


def calc_value(asset_amounts: Sequence[int], prices: Sequence[int]) -> int:
    """
    Value of a set of asset allocations at the given prices.

    The first asset is the quote (stable) asset and counts at face value;
    every other asset is valued at amount * price / 1e18.

    Args:
        asset_amounts: Allocation per asset
        prices: 18-decimal price per asset, aligned with asset_amounts

    Returns:
        Value in 18-decimal quote units
    """
    total = 0
    for index, amount in enumerate(asset_amounts):
        if amount == 0:
            continue
        if index == 0:
            total += amount
        else:
            total += tdiv(amount * prices[index], BASE_18)
    return total


def calc_weighted_average(amount_init: int, amount_new: int, value_init: int, value_new: int) -> int:
    """Amount-weighted average of two values (used for benchmark references)."""
    total = amount_init + amount_new
    return tdiv(amount_init * value_init + amount_new * value_new, total)
