"""
Simulated trading account.

`Portfolio` owns the wallet and the open positions of one backtest run
and turns strategy orders into state changes.  The order entry point is
shared by both account modes; the arithmetic behind it is not:

* ``SPOT_ONLY`` buys with cash, sells what it holds and never shorts.
* ``MARGIN`` opens long or short exposure against risk-adjusted equity,
  locks initial margin per position and liquidates every position when
  equity falls below the maintenance margin.

Orders are fire-and-forget.  Rejected orders are logged and leave the
account untouched; a strategy learns the outcome by querying the
portfolio again.
"""

from __future__ import annotations

import copy
import logging
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from ..errors import CollateralRatioError, ConfigError, MissingPriceError, ShortSellingError
from ..strategy.base import TradingContext
from .costs import (
    apply_slippage,
    initial_margin_rate,
    notional,
    proportional,
    round_amount,
    trading_fee,
    weighted_average_price,
)
from .models import (
    ONE,
    QUOTE_ASSET,
    ZERO,
    AccountMode,
    BacktestResult,
    EquityPoint,
    Position,
    Trade,
    TradeDirection,
)
from .wallet import Wallet

logger = logging.getLogger(__name__)

DEFAULT_MAINTENANCE_MARGIN_FACTOR = Decimal("0.5")


def base_asset(symbol: str) -> str:
    """``BTCUSDT`` -> ``BTC``."""
    return symbol[: -len(QUOTE_ASSET)]


def is_supported_symbol(symbol: str) -> bool:
    return symbol.endswith(QUOTE_ASSET) and len(symbol) > len(QUOTE_ASSET)


class Portfolio(TradingContext):
    """Wallet, open positions and trade log of a single run."""

    def __init__(
        self,
        initial_capital: Decimal,
        account_mode: AccountMode = AccountMode.SPOT_ONLY,
        fee_pct: Decimal = ZERO,
        slippage_pct: Decimal = ZERO,
        leverage: int = 1,
        maintenance_margin_factor: Decimal = DEFAULT_MAINTENANCE_MARGIN_FACTOR,
        collateral_ratios: Optional[Mapping[str, Decimal]] = None,
        allow_multiple_symbols: bool = False,
    ) -> None:
        if account_mode is AccountMode.MARGIN:
            if collateral_ratios is None:
                raise ConfigError("A collateral ratio table is required in margin mode")
            if QUOTE_ASSET not in collateral_ratios:
                raise CollateralRatioError(f"No collateral ratio configured for: {QUOTE_ASSET}")
        elif account_mode is not AccountMode.SPOT_ONLY:
            raise ConfigError(f"Unsupported account mode: {account_mode}")

        self.initial_capital = initial_capital
        self.account_mode = account_mode
        self.fee_pct = fee_pct
        self.slippage_pct = slippage_pct
        self.leverage = max(1, int(leverage))
        self.maintenance_margin_factor = maintenance_margin_factor
        self.collateral_ratios: Mapping[str, Decimal] = collateral_ratios or MappingProxyType({})
        self.allow_multiple_symbols = allow_multiple_symbols

        self.wallet = Wallet({QUOTE_ASSET: initial_capital})
        self.positions: Dict[str, Position] = {}
        self.trades: List[Trade] = []
        self.current_prices: Dict[str, Decimal] = {QUOTE_ASSET: ONE}
        self.current_timestamp = 0

    # ------------------------------------------------------------------
    # Market updates
    # ------------------------------------------------------------------
    def update_market(self, timestamp: int, prices: Mapping[str, Decimal]) -> None:
        """Set the clock and the latest price of each asset.

        `prices` is keyed by asset (``BTC``), not by symbol.  The quote
        asset is always priced at one.
        """
        self.current_timestamp = timestamp
        self.current_prices = dict(prices)
        self.current_prices[QUOTE_ASSET] = ONE

    def price_of(self, asset: str) -> Decimal:
        try:
            return self.current_prices[asset]
        except KeyError:
            raise MissingPriceError(f"No current price for {asset}") from None

    # ------------------------------------------------------------------
    # Queries available to strategies
    # ------------------------------------------------------------------
    def get_open_position(self, symbol: str) -> Optional[Position]:
        return self.positions.get(symbol)

    def get_open_positions(self) -> Mapping[str, Position]:
        return MappingProxyType(dict(self.positions))

    def get_current_price(self, symbol: str) -> Optional[Decimal]:
        return self.current_prices.get(base_asset(symbol))

    def wallet_balance(self, asset: str) -> Decimal:
        return self.wallet.balance(asset)

    def wallet_balances(self) -> Mapping[str, Decimal]:
        return self.wallet.snapshot()

    def net_asset_value(self) -> Decimal:
        """Sum of every balance marked at its current price."""
        total = ZERO
        for asset, balance in self.wallet.items():
            if balance == ZERO:
                continue
            total += balance * self.price_of(asset)
        return total

    def total_equity(self) -> Decimal:
        """Risk-adjusted equity of a margin account.

        Owned balances count at their collateral ratio, borrowed balances
        count in full against the account.
        """
        owned = ZERO
        borrowed = ZERO
        for asset, balance in self.wallet.items():
            if balance == ZERO:
                continue
            value = balance * self.price_of(asset)
            if balance > ZERO:
                try:
                    ratio = self.collateral_ratios[asset]
                except KeyError:
                    raise CollateralRatioError(f"No collateral ratio configured for: {asset}") from None
                owned += value * ratio
            else:
                borrowed += abs(value)
        return owned - borrowed

    def used_margin(self) -> Decimal:
        """Initial margin locked across all open positions."""
        return sum((p.collateral_locked for p in self.positions.values()), ZERO)

    def maintenance_margin(self) -> Decimal:
        return self.used_margin() * self.maintenance_margin_factor

    def initial_margin_rate(self) -> Decimal:
        return initial_margin_rate(self.leverage)

    # ------------------------------------------------------------------
    # Order entry
    # ------------------------------------------------------------------
    def submit_order(
        self,
        symbol: str,
        direction: TradeDirection,
        quantity: Decimal,
        reference_price: Decimal,
    ) -> None:
        """Request a fill of `quantity` at `reference_price`.

        Opens, scales into or scales out of the position on `symbol`
        depending on its current state.  Nothing is returned; query the
        portfolio afterwards to see what happened.

        Raises
        ------
        ShortSellingError
            If a short position is requested on a spot-only account.
        """
        if quantity <= ZERO or reference_price <= ZERO:
            logger.warning(
                "Rejected order for %s: quantity (%s) and price (%s) must be positive",
                symbol, quantity, reference_price,
            )
            return
        if not is_supported_symbol(symbol):
            logger.error("Unsupported symbol %s. Only %s pairs are supported.", symbol, QUOTE_ASSET)
            return
        if base_asset(symbol) not in self.current_prices:
            logger.warning("Rejected order for %s: no current price for %s", symbol, base_asset(symbol))
            return

        existing = self.positions.get(symbol)
        if existing is None and self.positions and not self.allow_multiple_symbols:
            logger.warning(
                "Rejected order for %s: a position is already open on %s",
                symbol, ", ".join(sorted(self.positions)),
            )
            return

        if self.account_mode is AccountMode.SPOT_ONLY:
            if existing is None:
                if direction is TradeDirection.SHORT:
                    raise ShortSellingError(f"Short selling {symbol} is not allowed on a spot-only account")
                self._buy_spot(symbol, quantity, reference_price)
            elif direction is existing.direction:
                self._buy_spot(symbol, quantity, reference_price)
            else:
                self._sell_spot(existing, quantity, reference_price)
        elif self.account_mode is AccountMode.MARGIN:
            if existing is None:
                self._open_margin(symbol, direction, quantity, reference_price)
            elif direction is existing.direction:
                self._scale_in_margin(existing, quantity, reference_price)
            else:
                self._scale_out_margin(existing, quantity, reference_price)
        else:
            raise ConfigError(f"Unsupported account mode: {self.account_mode}")

    # ------------------------------------------------------------------
    # Spot account
    # ------------------------------------------------------------------
    def _buy_spot(self, symbol: str, quantity: Decimal, price: Decimal) -> None:
        asset = base_asset(symbol)
        execution_price = apply_slippage(price, TradeDirection.LONG, self.slippage_pct)
        value = notional(execution_price, quantity)
        total_cost = value + trading_fee(value, self.fee_pct)

        available = self.wallet.balance(QUOTE_ASSET)
        if available < total_cost:
            logger.warning(
                "SPOT: insufficient funds to buy %s %s. Required: %s, available: %s",
                quantity, symbol, total_cost, available,
            )
            return

        self.wallet.debit(QUOTE_ASSET, total_cost)
        self.wallet.credit(asset, quantity)

        existing = self.positions.get(symbol)
        if existing is None:
            self.positions[symbol] = Position(
                symbol=symbol,
                entry_timestamp=self.current_timestamp,
                direction=TradeDirection.LONG,
                quantity=quantity,
                entry_price=execution_price,
                mode=AccountMode.SPOT_ONLY,
                cash_paid=total_cost,
            )
            logger.info("SPOT: opened LONG %s %s @ %s", quantity, asset, execution_price)
        else:
            self.positions[symbol] = existing.with_changes(
                quantity=existing.quantity + quantity,
                entry_price=weighted_average_price(existing.quantity, existing.entry_price, quantity, value),
                cash_paid=existing.cash_paid + total_cost,
            )
            logger.info("SPOT: scaled in LONG %s %s @ %s", quantity, asset, execution_price)

    def _sell_spot(self, position: Position, requested: Decimal, price: Decimal) -> None:
        asset = base_asset(position.symbol)
        quantity = min(requested, position.quantity)
        if self.wallet.balance(asset) < quantity:
            logger.error(
                "Wallet holds %s %s but the %s position records %s. Aborting sell.",
                self.wallet.balance(asset), asset, position.symbol, position.quantity,
            )
            return

        execution_price = apply_slippage(price, TradeDirection.SHORT, self.slippage_pct)
        value = notional(execution_price, quantity)
        proceeds = value - trading_fee(value, self.fee_pct)

        self.wallet.debit(asset, quantity)
        self.wallet.credit(QUOTE_ASSET, proceeds)
        self._record_trade(position, quantity, execution_price)

        remaining = position.quantity - quantity
        if remaining > ZERO:
            self.positions[position.symbol] = position.with_changes(
                quantity=remaining,
                cash_paid=proportional(position.cash_paid, remaining, position.quantity),
            )
        else:
            del self.positions[position.symbol]
        logger.info("SPOT: sold %s %s @ %s", quantity, asset, execution_price)

    # ------------------------------------------------------------------
    # Margin account
    # ------------------------------------------------------------------
    def _has_margin_for(self, symbol: str, collateral: Decimal, fee: Decimal) -> bool:
        available = self.total_equity() - self.used_margin()
        required = collateral + fee
        if available < required:
            logger.warning(
                "MARGIN: check failed for %s. Required: %s, available: %s",
                symbol, required, available,
            )
            return False
        return True

    def _book_margin_entry(self, asset: str, direction: TradeDirection, quantity: Decimal, value: Decimal, fee: Decimal) -> None:
        self.wallet.debit(QUOTE_ASSET, fee)
        if direction is TradeDirection.LONG:
            self.wallet.credit(asset, quantity)
            self.wallet.debit(QUOTE_ASSET, value)
        else:
            self.wallet.debit(asset, quantity)
            self.wallet.credit(QUOTE_ASSET, value)

    def _open_margin(self, symbol: str, direction: TradeDirection, quantity: Decimal, price: Decimal) -> None:
        asset = base_asset(symbol)
        execution_price = apply_slippage(price, direction, self.slippage_pct)
        value = notional(execution_price, quantity)
        collateral = round_amount(value * self.initial_margin_rate())
        fee = trading_fee(value, self.fee_pct)
        if not self._has_margin_for(symbol, collateral, fee):
            return

        self._book_margin_entry(asset, direction, quantity, value, fee)
        self.positions[symbol] = Position(
            symbol=symbol,
            entry_timestamp=self.current_timestamp,
            direction=direction,
            quantity=quantity,
            entry_price=execution_price,
            mode=AccountMode.MARGIN,
            collateral_locked=collateral,
        )
        logger.info(
            "MARGIN: opened %s %s %s @ %s (margin %s)",
            direction.name, quantity, asset, execution_price, collateral,
        )

    def _scale_in_margin(self, position: Position, quantity: Decimal, price: Decimal) -> None:
        asset = base_asset(position.symbol)
        execution_price = apply_slippage(price, position.direction, self.slippage_pct)
        value = notional(execution_price, quantity)
        collateral = round_amount(value * self.initial_margin_rate())
        fee = trading_fee(value, self.fee_pct)
        if not self._has_margin_for(position.symbol, collateral, fee):
            return

        self._book_margin_entry(asset, position.direction, quantity, value, fee)
        self.positions[position.symbol] = position.with_changes(
            quantity=position.quantity + quantity,
            entry_price=weighted_average_price(position.quantity, position.entry_price, quantity, value),
            collateral_locked=position.collateral_locked + collateral,
        )
        logger.info(
            "MARGIN: scaled in %s %s %s @ %s",
            position.direction.name, quantity, asset, execution_price,
        )

    def _scale_out_margin(self, position: Position, requested: Decimal, price: Decimal) -> None:
        asset = base_asset(position.symbol)
        quantity = min(requested, position.quantity)
        execution_price = apply_slippage(price, position.direction.opposite(), self.slippage_pct)
        value = notional(execution_price, quantity)

        self.wallet.debit(QUOTE_ASSET, trading_fee(value, self.fee_pct))
        if position.direction is TradeDirection.LONG:
            self.wallet.debit(asset, quantity)
            self.wallet.credit(QUOTE_ASSET, value)
        else:
            self.wallet.credit(asset, quantity)
            self.wallet.debit(QUOTE_ASSET, value)
        self._record_trade(position, quantity, execution_price)

        remaining = position.quantity - quantity
        if remaining > ZERO:
            self.positions[position.symbol] = position.with_changes(
                quantity=remaining,
                collateral_locked=proportional(position.collateral_locked, remaining, position.quantity),
            )
        else:
            del self.positions[position.symbol]
        logger.info(
            "MARGIN: scaled out %s %s %s @ %s",
            position.direction.name, quantity, asset, execution_price,
        )

    def is_margin_call_triggered(self) -> bool:
        if self.account_mode is not AccountMode.MARGIN or not self.positions:
            return False
        equity = self.total_equity()
        maintenance = self.maintenance_margin()
        if equity < maintenance:
            logger.warning(
                "MARGIN CALL: total equity (%s) is below maintenance margin (%s)",
                _cents(equity), _cents(maintenance),
            )
            return True
        return False

    def liquidate_all_positions(self) -> None:
        """Close every open position at the current price."""
        logger.error("MARGIN CALL: liquidating all positions due to insufficient equity")
        for symbol in sorted(self.positions):
            position = self.positions[symbol]
            price = self.current_prices.get(base_asset(symbol))
            if price is None:
                logger.error("Cannot liquidate %s: no current price. The position stays open.", symbol)
                continue
            logger.warning(
                "Liquidating %s %s %s at %s",
                position.direction.name, position.quantity, symbol, _cents(price),
            )
            self._close_position(position, price)

    def check_liquidation(self) -> bool:
        """Liquidate if the margin call condition holds.  Returns whether it did."""
        if self.is_margin_call_triggered():
            self.liquidate_all_positions()
            return True
        return False

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------
    def _close_position(self, position: Position, price: Decimal) -> None:
        if self.account_mode is AccountMode.SPOT_ONLY:
            self._sell_spot(position, position.quantity, price)
        elif self.account_mode is AccountMode.MARGIN:
            self._scale_out_margin(position, position.quantity, price)
        else:
            raise ConfigError(f"Unsupported account mode: {self.account_mode}")

    def _record_trade(self, position: Position, quantity: Decimal, exit_price: Decimal) -> None:
        self.trades.append(
            Trade(
                symbol=position.symbol,
                entry_timestamp=position.entry_timestamp,
                exit_timestamp=self.current_timestamp,
                entry_price=position.entry_price,
                exit_price=exit_price,
                quantity=quantity,
                direction=position.direction,
            )
        )

    def _settlement_copy(self) -> "Portfolio":
        clone = copy.copy(self)
        clone.wallet = self.wallet.copy()
        clone.positions = dict(self.positions)
        clone.trades = list(self.trades)
        clone.current_prices = dict(self.current_prices)
        return clone

    def settled_value(self) -> Decimal:
        """NAV after closing every open position at the current prices.

        The closes happen on a copy of the account, with slippage and
        fees as if the strategy had closed them, so the trade log of this
        portfolio is unchanged.
        """
        if not self.positions:
            return self.net_asset_value()
        settlement = self._settlement_copy()
        for symbol in sorted(settlement.positions):
            position = settlement.positions[symbol]
            settlement._close_position(position, settlement.price_of(base_asset(symbol)))
        return settlement.net_asset_value()

    def equity_point(self) -> EquityPoint:
        return EquityPoint(timestamp=self.current_timestamp, equity=round_amount(self.net_asset_value()))

    def calculate_result(self, equity_curve: Optional[List[EquityPoint]] = None) -> BacktestResult:
        final_value = round_amount(self.settled_value())
        pnl = final_value - self.initial_capital
        if self.initial_capital > ZERO:
            ratio = (pnl / self.initial_capital).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
            pnl_percent = ratio * 100
        else:
            pnl_percent = ZERO
        logger.info(
            "Backtest finished. Initial capital: %s, final NAV: %s, P/L: %s (%s%%)",
            _cents(self.initial_capital), _cents(final_value), _cents(pnl), _cents(pnl_percent),
        )
        return BacktestResult(
            final_value=final_value,
            pnl=pnl,
            pnl_percent=pnl_percent,
            trades=tuple(self.trades),
            total_trades=len(self.trades),
            equity_curve=tuple(equity_curve or ()),
        )


def _cents(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
