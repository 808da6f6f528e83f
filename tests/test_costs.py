import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from decimal import Decimal

from backtester.execution.costs import (
    apply_slippage,
    initial_margin_rate,
    notional,
    proportional,
    round_amount,
    trading_fee,
    weighted_average_price,
)
from backtester.execution.models import TradeDirection

import unittest


class TestRounding(unittest.TestCase):
    def test_round_amount_is_half_up_at_eight_places(self) -> None:
        self.assertEqual(round_amount(Decimal("1.123456785")), Decimal("1.12345679"))
        self.assertEqual(round_amount(Decimal("1.123456784")), Decimal("1.12345678"))
        self.assertEqual(round_amount(Decimal("-0.000000005")), Decimal("-0.00000001"))

    def test_notional_and_fee(self) -> None:
        value = notional(Decimal("20000"), Decimal("1.5"))
        self.assertEqual(value, Decimal("30000"))
        self.assertEqual(trading_fee(value, Decimal("0.001")), Decimal("30"))
        self.assertEqual(trading_fee(value, Decimal("0")), Decimal("0"))


class TestSlippage(unittest.TestCase):
    def test_buy_fills_above_and_sell_below(self) -> None:
        price = Decimal("100")
        self.assertEqual(apply_slippage(price, TradeDirection.LONG, Decimal("0.01")), Decimal("101"))
        self.assertEqual(apply_slippage(price, TradeDirection.SHORT, Decimal("0.01")), Decimal("99"))

    def test_zero_slippage_returns_reference_price(self) -> None:
        price = Decimal("20000.123")
        self.assertIs(apply_slippage(price, TradeDirection.LONG, Decimal("0")), price)


class TestProportionalAndAverage(unittest.TestCase):
    def test_proportional_share(self) -> None:
        self.assertEqual(proportional(Decimal("100"), Decimal("1"), Decimal("3")), Decimal("33.33333333"))
        self.assertEqual(proportional(Decimal("441.63232128"), Decimal("1"), Decimal("2")), Decimal("220.81616064"))

    def test_proportional_of_empty_whole_is_zero(self) -> None:
        self.assertEqual(proportional(Decimal("100"), Decimal("1"), Decimal("0")), Decimal("0"))

    def test_weighted_average_price(self) -> None:
        avg = weighted_average_price(Decimal("1"), Decimal("20000"), Decimal("1"), Decimal("22000"))
        self.assertEqual(avg, Decimal("21000"))


class TestInitialMarginRate(unittest.TestCase):
    def test_known_values(self) -> None:
        self.assertEqual(initial_margin_rate(1), Decimal("1.02"))
        self.assertEqual(initial_margin_rate(2), Decimal("0.5202"))
        self.assertEqual(initial_margin_rate(5), Decimal("0.22081616064"))

    def test_leverage_below_one_is_clamped(self) -> None:
        self.assertEqual(initial_margin_rate(0), initial_margin_rate(1))

    def test_rate_decreases_with_leverage(self) -> None:
        self.assertGreater(initial_margin_rate(2), initial_margin_rate(10))


if __name__ == '__main__':
    unittest.main()
