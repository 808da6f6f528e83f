"""
Strategy boundary.

A strategy sees one bar at a time together with a `TradingContext`
(the portfolio) it can query and send orders to.  Orders give no
synchronous confirmation: the strategy checks positions and balances
again to learn whether an order was filled.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Mapping, Optional

from ..execution.models import Position, PriceBar, TradeDirection


class TradingContext(ABC):
    """Operations a strategy may use during a run."""

    @abstractmethod
    def submit_order(self, symbol: str, direction: TradeDirection, quantity: Decimal, reference_price: Decimal) -> None:
        ...

    @abstractmethod
    def get_open_position(self, symbol: str) -> Optional[Position]:
        ...

    @abstractmethod
    def get_open_positions(self) -> Mapping[str, Position]:
        ...

    @abstractmethod
    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        """Latest close of `symbol`, or ``None`` if it has not traded yet."""

    @abstractmethod
    def wallet_balance(self, asset: str) -> Decimal:
        ...

    @abstractmethod
    def wallet_balances(self) -> Mapping[str, Decimal]:
        ...

    @abstractmethod
    def net_asset_value(self) -> Decimal:
        ...

    @abstractmethod
    def total_equity(self) -> Decimal:
        ...

    @abstractmethod
    def used_margin(self) -> Decimal:
        ...


class Strategy(ABC):
    """Base class for trading strategies.

    Strategies usually keep state between bars, so use a new instance
    for every backtest run.
    """

    @abstractmethod
    def on_bar(self, symbol: str, bar: PriceBar, context: TradingContext) -> None:
        """Handle a new bar for `symbol`, optionally submitting orders."""
