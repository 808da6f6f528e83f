"""
Scripted strategy.

Replays a fixed list of orders, each tied to the index of the bar on
which it fires.  Useful for reproducing a known sequence of trades and
for exercising the portfolio rules without indicator logic.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Deque, Iterable

from ..config.schema import Config
from ..errors import ConfigError
from ..execution.models import PriceBar, TradeDirection
from .base import Strategy, TradingContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderAction:
    """An order to submit at the close of bar number `bar_index` (zero-based)."""

    bar_index: int
    symbol: str
    direction: TradeDirection
    quantity: Decimal


class ScriptedStrategy(Strategy):
    """Submit pre-defined orders on given bars.

    Bars are counted across all symbols in the order the engine
    delivers them.  An action fires when the bar count equals its
    `bar_index`.  The reference price is the bar's close when the bar
    belongs to the action's symbol, otherwise the latest price of the
    action's symbol known to the context.
    """

    def __init__(self, actions: Iterable[OrderAction]) -> None:
        self.actions: Deque[OrderAction] = deque(sorted(actions, key=lambda a: a.bar_index))
        self.bar_count = 0

    def on_bar(self, symbol: str, bar: PriceBar, context: TradingContext) -> None:
        while self.actions and self.actions[0].bar_index == self.bar_count:
            action = self.actions.popleft()
            if action.symbol == symbol:
                price = bar.close
            else:
                price = context.get_current_price(action.symbol)
            if price is None:
                logger.warning(
                    "Skipping scripted %s order for %s on bar %d: no price yet",
                    action.direction.name, action.symbol, action.bar_index,
                )
                continue
            context.submit_order(action.symbol, action.direction, action.quantity, price)
        self.bar_count += 1


def build_strategy(config: Config) -> Strategy:
    """Create a fresh strategy instance from the run configuration."""
    strategy_cfg = config.strategy
    if strategy_cfg.type == "scripted":
        return ScriptedStrategy(
            OrderAction(
                bar_index=action.bar,
                symbol=action.symbol,
                direction=action.direction,
                quantity=action.quantity,
            )
            for action in strategy_cfg.actions
        )
    raise ConfigError(f"Unknown strategy type: {strategy_cfg.type}")
