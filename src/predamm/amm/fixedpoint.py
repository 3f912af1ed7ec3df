"""Integer fixed-point helpers shared by the market engine. All results round toward the pool."""

from __future__ import annotations

BPS = 10_000


def isqrt(n: int) -> int:
    """Floor of the square root of n (Babylonian / Newton iteration)."""
    if n < 0:
        raise ValueError(f"square root of negative number: {n}")
    if n < 2:
        return n
    x = n
    y = (x + 1) // 2
    while y < x:
        x = y
        y = (x + n // x) // 2
    return x


def ceil_sqrt(n: int) -> int:
    root = isqrt(n)
    return root if root * root == n else root + 1


def mul_bps(amount: int, bps: int) -> int:
    return amount * bps // BPS


def lp_value(lp_amount: int, reserve_yes: int, reserve_no: int, total_supply: int) -> int:
    """Collateral value of lp_amount shares: lp_amount * sqrt(yes * no) / supply. Zero when supply is zero."""
    if total_supply == 0:
        return 0
    return lp_amount * isqrt(reserve_yes * reserve_no) // total_supply


def buy_return(amount_in_after_fee: int, reserve_bought: int, reserve_other: int) -> int:
    """Tokens of the bought side released for a buy, solved on pre-trade reserves."""
    k = reserve_bought * reserve_other
    return reserve_bought - k // (reserve_other + amount_in_after_fee)


def sell_return(amount_in: int, reserve_sold: int, reserve_other: int) -> int:
    """Complete sets redeemable when amount_in of one side is sold into the pool.

    Solves (reserve_sold + amount_in - t) * (reserve_other - t) = reserve_sold * reserve_other
    for the smaller root t, rounded down, so the pool product never shrinks.
    """
    b = reserve_sold + amount_in + reserve_other
    discriminant = b * b - 4 * amount_in * reserve_other
    return (b - ceil_sqrt(discriminant)) // 2
