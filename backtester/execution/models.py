"""
Price bar, position and trade models.

These dataclasses represent the objects passed between the data
loader, the strategy and the portfolio.  All prices and quantities are
``Decimal`` so a run is reproducible bit-for-bit.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Tuple

ZERO = Decimal(0)
ONE = Decimal(1)

QUOTE_ASSET = "USDT"


class TradeDirection(Enum):
    """Direction of an order or position."""

    LONG = "long"
    SHORT = "short"

    def opposite(self) -> "TradeDirection":
        return TradeDirection.SHORT if self is TradeDirection.LONG else TradeDirection.LONG

    @classmethod
    def parse(cls, value: str) -> "TradeDirection":
        return cls(str(value).strip().lower())


class AccountMode(Enum):
    """Accounting regime of a run.

    ``SPOT_ONLY`` buys with cash only and never shorts.  ``MARGIN``
    allows long and short positions backed by collateral.
    """

    SPOT_ONLY = "spot_only"
    MARGIN = "margin"

    @classmethod
    def parse(cls, value: str) -> "AccountMode":
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class PriceBar:
    """OHLCV bar.  ``timestamp`` is milliseconds since the Unix epoch."""

    timestamp: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = ZERO


@dataclass(frozen=True)
class Position:
    """Represents an open position on a given symbol.

    ``cash_paid`` is the cash spent on the position including fees and is
    only used on spot accounts.  ``collateral_locked`` is the initial
    margin held for the position and is only used on margin accounts.
    """

    symbol: str
    entry_timestamp: int
    direction: TradeDirection
    quantity: Decimal
    entry_price: Decimal
    mode: AccountMode
    cash_paid: Decimal = ZERO
    collateral_locked: Decimal = ZERO

    @property
    def cost_basis(self) -> Decimal:
        if self.mode is AccountMode.SPOT_ONLY:
            return self.cash_paid
        if self.mode is AccountMode.MARGIN:
            return self.collateral_locked
        raise ValueError(f"Unsupported account mode: {self.mode}")

    def with_changes(self, **changes) -> "Position":
        return replace(self, **changes)


@dataclass(frozen=True)
class Trade:
    """Represents a completed (fully or partially closed) trade."""

    symbol: str
    entry_timestamp: int
    exit_timestamp: int
    entry_price: Decimal
    exit_price: Decimal
    quantity: Decimal
    direction: TradeDirection

    @property
    def gross_pnl(self) -> Decimal:
        """Price P/L of the closed quantity, before fees."""
        if self.direction is TradeDirection.LONG:
            return (self.exit_price - self.entry_price) * self.quantity
        return (self.entry_price - self.exit_price) * self.quantity


@dataclass(frozen=True)
class EquityPoint:
    """Represents the account net asset value at a given timestamp."""

    timestamp: int
    equity: Decimal


@dataclass(frozen=True)
class BacktestResult:
    """Final outcome of a run.  Built once, never mutated."""

    final_value: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    trades: Tuple[Trade, ...] = ()
    total_trades: int = 0
    equity_curve: Tuple[EquityPoint, ...] = field(default=(), repr=False)
