import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import tempfile
from decimal import Decimal

from backtester.data.csv_data import CSVDataLoader

import unittest

HEADER = "timestamp_ms,open,high,low,close,volume\n"


class TestCSVDataLoader(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.loader = CSVDataLoader(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _write(self, symbol: str, text: str) -> None:
        with open(os.path.join(self.tmp.name, f"{symbol}.csv"), "w", encoding="utf-8") as fh:
            fh.write(text)

    def test_load_converts_to_decimal_and_sorts(self) -> None:
        self._write(
            "BTCUSDT",
            HEADER
            + "1672534800000,20100.10,20200,20000,20150.25,12.5\n"
            + "1672531200000,20000,20110,19950,20100.10,10\n",
        )
        bars = self.loader.load("BTCUSDT")
        self.assertEqual([b.timestamp for b in bars], [1672531200000, 1672534800000])
        self.assertEqual(bars[1].close, Decimal("20150.25"))
        self.assertIsInstance(bars[0].open, Decimal)
        self.assertEqual(bars[1].volume, Decimal("12.5"))

    def test_header_case_and_spaces_are_tolerated(self) -> None:
        self._write("ETHUSDT", "Timestamp_MS, Open, High, Low, Close, Volume\n1672531200000, 1000, 1010, 990, 1005, 3\n")
        bars = self.loader.load("ETHUSDT")
        self.assertEqual(bars[0].close, Decimal("1005"))

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            self.loader.load("XRPUSDT")

    def test_missing_column(self) -> None:
        self._write("BTCUSDT", "timestamp_ms,open,high,low,volume\n1672531200000,1,1,1,1\n")
        with self.assertRaises(ValueError) as ctx:
            self.loader.load("BTCUSDT")
        self.assertIn("close", str(ctx.exception))

    def test_header_only_file_is_empty(self) -> None:
        self._write("BTCUSDT", HEADER)
        with self.assertRaises(ValueError):
            self.loader.load("BTCUSDT")

    def test_malformed_value_reports_line(self) -> None:
        self._write("BTCUSDT", HEADER + "1672531200000,1,1,1,1,1\n1672534800000,1,1,1,abc,1\n")
        with self.assertRaises(ValueError) as ctx:
            self.loader.load("BTCUSDT")
        self.assertIn("line 3", str(ctx.exception))

    def test_load_many(self) -> None:
        self._write("BTCUSDT", HEADER + "1672531200000,1,1,1,1,1\n")
        self._write("ETHUSDT", HEADER + "1672531200000,2,2,2,2,2\n")
        data = self.loader.load_many(["BTCUSDT", "ETHUSDT"])
        self.assertEqual(list(data), ["BTCUSDT", "ETHUSDT"])
        self.assertEqual(data["ETHUSDT"][0].close, Decimal("2"))


if __name__ == '__main__':
    unittest.main()
