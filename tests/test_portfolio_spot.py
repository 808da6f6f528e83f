import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from decimal import Decimal

from backtester.errors import MissingPriceError, ShortSellingError
from backtester.execution.models import AccountMode, TradeDirection
from backtester.execution.portfolio import Portfolio

import unittest

LONG = TradeDirection.LONG
SHORT = TradeDirection.SHORT
D = Decimal


def _spot(capital: str = "30000", **kwargs) -> Portfolio:
    return Portfolio(initial_capital=D(capital), account_mode=AccountMode.SPOT_ONLY, **kwargs)


class TestSpotOrders(unittest.TestCase):
    def test_buy_then_sell_for_profit(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1.0"), D("20000"))
        self.assertEqual(pf.wallet_balance("USDT"), D("10000"))
        self.assertEqual(pf.wallet_balance("BTC"), D("1.0"))
        self.assertEqual(pf.get_open_position("BTCUSDT").cost_basis, D("20000"))

        pf.update_market(3, {"BTC": D("20200")})
        pf.submit_order("BTCUSDT", SHORT, D("1.0"), D("20200"))
        self.assertIsNone(pf.get_open_position("BTCUSDT"))
        self.assertEqual(pf.net_asset_value(), D("30200"))
        self.assertEqual(len(pf.trades), 1)
        trade = pf.trades[0]
        self.assertEqual(trade.gross_pnl, D("200"))
        self.assertEqual((trade.entry_timestamp, trade.exit_timestamp), (1, 3))

    def test_scale_in_averages_entry_price(self) -> None:
        pf = _spot("50000")
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        pf.update_market(2, {"BTC": D("22000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("22000"))
        pos = pf.get_open_position("BTCUSDT")
        self.assertEqual(pos.quantity, D("2"))
        self.assertEqual(pos.entry_price, D("21000"))
        self.assertEqual(pos.cash_paid, D("42000"))
        self.assertEqual(pos.entry_timestamp, 1)
        self.assertEqual(pf.wallet_balance("USDT"), D("8000"))

    def test_partial_sell_keeps_remaining_position(self) -> None:
        pf = _spot("50000")
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("2"), D("20000"))
        pf.update_market(2, {"BTC": D("22000")})
        pf.submit_order("BTCUSDT", SHORT, D("1"), D("22000"))
        pos = pf.get_open_position("BTCUSDT")
        self.assertEqual(pos.quantity, D("1"))
        self.assertEqual(pos.cash_paid, D("20000"))
        self.assertEqual(pf.wallet_balance("USDT"), D("32000"))
        self.assertEqual(len(pf.trades), 1)

        pf.update_market(3, {"BTC": D("23000")})
        result = pf.calculate_result()
        self.assertEqual(result.final_value, D("55000"))
        self.assertEqual(result.total_trades, 1)
        # settlement leaves the account untouched
        self.assertIsNotNone(pf.get_open_position("BTCUSDT"))
        self.assertEqual(len(pf.trades), 1)

    def test_oversized_sell_is_capped(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1.0"), D("20000"))
        pf.submit_order("BTCUSDT", SHORT, D("1.5"), D("20000"))
        self.assertIsNone(pf.get_open_position("BTCUSDT"))
        self.assertEqual(len(pf.trades), 1)
        self.assertEqual(pf.trades[0].quantity, D("1.0"))
        self.assertEqual(pf.wallet_balance("BTC"), D("0"))

    def test_round_trip_fee(self) -> None:
        pf = _spot(fee_pct=D("0.001"))
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        self.assertEqual(pf.wallet_balance("USDT"), D("9980"))
        pf.submit_order("BTCUSDT", SHORT, D("1"), D("20000"))
        self.assertEqual(pf.net_asset_value(), D("29960"))

    def test_round_trip_without_costs_keeps_value(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("0.75"), D("20000"))
        pf.submit_order("BTCUSDT", SHORT, D("0.75"), D("20000"))
        self.assertEqual(pf.net_asset_value(), D("30000"))

    def test_slippage_moves_execution_price(self) -> None:
        pf = _spot(slippage_pct=D("0.001"))
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        self.assertEqual(pf.get_open_position("BTCUSDT").entry_price, D("20020"))
        pf.submit_order("BTCUSDT", SHORT, D("1"), D("20000"))
        self.assertEqual(pf.trades[0].exit_price, D("19980"))
        self.assertEqual(pf.wallet_balance("USDT"), D("29960"))

    def test_insufficient_funds_rejects_buy(self) -> None:
        pf = _spot("19999.99")
        pf.update_market(1, {"BTC": D("20000")})
        with self.assertLogs("backtester.execution.portfolio", level="WARNING"):
            pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        self.assertIsNone(pf.get_open_position("BTCUSDT"))
        self.assertEqual(pf.wallet_balance("USDT"), D("19999.99"))

    def test_short_without_position_is_fatal(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        with self.assertRaises(ShortSellingError):
            pf.submit_order("BTCUSDT", SHORT, D("1"), D("20000"))

    def test_invalid_orders_are_ignored(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        with self.assertLogs("backtester.execution.portfolio", level="WARNING"):
            pf.submit_order("BTCUSDT", LONG, D("0"), D("20000"))
            pf.submit_order("BTCUSDT", LONG, D("1"), D("-1"))
            pf.submit_order("BTCEUR", LONG, D("1"), D("20000"))
        self.assertEqual(pf.get_open_positions(), {})
        self.assertEqual(pf.wallet_balances(), {"USDT": D("30000")})

    def test_second_symbol_rejected_by_default(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000"), "ETH": D("1000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        with self.assertLogs("backtester.execution.portfolio", level="WARNING"):
            pf.submit_order("ETHUSDT", LONG, D("1"), D("1000"))
        self.assertEqual(list(pf.get_open_positions()), ["BTCUSDT"])
        self.assertEqual(pf.wallet_balance("USDT"), D("10000"))

    def test_order_without_price_is_rejected(self) -> None:
        pf = _spot(allow_multiple_symbols=True)
        pf.update_market(1, {"BTC": D("20000")})
        with self.assertLogs("backtester.execution.portfolio", level="WARNING"):
            pf.submit_order("ETHUSDT", LONG, D("1"), D("1000"))
        self.assertEqual(pf.get_open_positions(), {})
        self.assertEqual(pf.wallet_balances(), {"USDT": D("30000")})
        self.assertEqual(pf.net_asset_value(), D("30000"))

    def test_second_symbol_allowed_when_enabled(self) -> None:
        pf = _spot(allow_multiple_symbols=True)
        pf.update_market(1, {"BTC": D("20000"), "ETH": D("1000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        pf.submit_order("ETHUSDT", LONG, D("2"), D("1000"))
        self.assertEqual(sorted(pf.get_open_positions()), ["BTCUSDT", "ETHUSDT"])
        self.assertEqual(pf.wallet_balance("USDT"), D("8000"))
        self.assertEqual(pf.net_asset_value(), D("30000"))

    def test_valuation_without_price_raises(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        pf.update_market(2, {})
        with self.assertRaises(MissingPriceError):
            pf.net_asset_value()

    def test_spot_account_never_margin_called(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        pf.update_market(2, {"BTC": D("1")})
        self.assertFalse(pf.check_liquidation())
        self.assertIsNotNone(pf.get_open_position("BTCUSDT"))

    def test_pnl_percent_is_rounded(self) -> None:
        pf = _spot()
        pf.update_market(1, {"BTC": D("20000")})
        pf.submit_order("BTCUSDT", LONG, D("1"), D("20000"))
        pf.update_market(2, {"BTC": D("20200")})
        result = pf.calculate_result()
        self.assertEqual(result.final_value, D("30200"))
        self.assertEqual(result.pnl, D("200"))
        self.assertEqual(result.pnl_percent, D("0.67"))


if __name__ == '__main__':
    unittest.main()
