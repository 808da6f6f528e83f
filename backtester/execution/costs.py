"""
Execution cost model.

Pure helpers for slippage, fees and fixed-scale rounding.  Every
monetary figure produced by the portfolio passes through `round_amount`
so results do not depend on the size of intermediate products.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .models import ONE, ZERO, TradeDirection

PRICE_SCALE = 8
_QUANTUM = Decimal(1).scaleb(-PRICE_SCALE)


def round_amount(value: Decimal) -> Decimal:
    """Round to `PRICE_SCALE` fractional digits, half-up."""
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def apply_slippage(price: Decimal, order_direction: TradeDirection, slippage_pct: Decimal) -> Decimal:
    """Return the execution price for an order at `price`.

    Buy-side orders (``LONG``) fill above the reference price and
    sell-side orders (``SHORT``) below it.  With zero slippage the
    reference price is returned untouched.
    """
    if slippage_pct == ZERO:
        return price
    if order_direction is TradeDirection.LONG:
        multiplier = ONE + slippage_pct
    else:
        multiplier = ONE - slippage_pct
    return round_amount(price * multiplier)


def notional(price: Decimal, quantity: Decimal) -> Decimal:
    return round_amount(price * quantity)


def trading_fee(value: Decimal, fee_pct: Decimal) -> Decimal:
    """Flat percentage fee on the notional `value`."""
    return round_amount(value * fee_pct)


def proportional(total: Decimal, part: Decimal, whole: Decimal) -> Decimal:
    """Share of `total` attributable to `part` out of `whole`."""
    if whole == ZERO:
        return ZERO
    return round_amount(total * part / whole)


def weighted_average_price(
    old_quantity: Decimal,
    old_price: Decimal,
    added_quantity: Decimal,
    added_value: Decimal,
) -> Decimal:
    """Volume-weighted entry price after adding to a position."""
    total_quantity = old_quantity + added_quantity
    return round_amount((old_price * old_quantity + added_value) / total_quantity)


def initial_margin_rate(leverage: int) -> Decimal:
    """Initial margin rate ``(1 / leverage) * 1.02 ** leverage``.

    The stress factor grows with leverage, so required collateral per
    unit of notional falls more slowly than ``1 / leverage``.
    """
    leverage = max(1, int(leverage))
    return (ONE / Decimal(leverage)) * (Decimal("1.02") ** leverage)
