"""
CSV data loader.

This module provides a class to load historical OHLCV bars from CSV
files.  The expected schema for each CSV is:

```
timestamp_ms,open,high,low,close,volume
```

`timestamp_ms` is the bar open time in milliseconds since the Unix
epoch.  Columns are read as text and converted straight to ``Decimal``
so no value ever passes through a binary float.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from ..execution.models import PriceBar

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["timestamp_ms", "open", "high", "low", "close", "volume"]


class CSVDataLoader:
    """Load OHLCV bars from CSV files for backtesting.

    Parameters
    ----------
    csv_dir : str
        Directory where the CSV files are located.  Each symbol's file
        must be named `{SYMBOL}.csv`.
    """

    def __init__(self, csv_dir: str) -> None:
        self.csv_dir = Path(csv_dir)

    def load(self, symbol: str) -> List[PriceBar]:
        """Read the bars of `symbol`, ordered by timestamp.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            If a column is missing, a value is malformed or the file holds
            no rows.
        """
        file_path = self.csv_dir / f"{symbol}.csv"
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for symbol {symbol}: {file_path}")
        logger.info("Loading historical data for %s from %s", symbol, file_path)

        df = pd.read_csv(file_path, dtype=str, keep_default_na=False, skipinitialspace=True)
        df.columns = [c.strip().lower() for c in df.columns]
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format for {symbol}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )
        if df.empty:
            raise ValueError(f"Data file is empty or contains no records: {file_path}")

        bars: List[PriceBar] = []
        for line, row in enumerate(df[REQUIRED_COLUMNS].itertuples(index=False, name=None), start=2):
            try:
                bars.append(
                    PriceBar(
                        timestamp=int(row[0].strip()),
                        open=Decimal(row[1].strip()),
                        high=Decimal(row[2].strip()),
                        low=Decimal(row[3].strip()),
                        close=Decimal(row[4].strip()),
                        volume=Decimal(row[5].strip()),
                    )
                )
            except (ValueError, InvalidOperation) as exc:
                raise ValueError(f"Malformed record in {file_path} at line {line}: {row}") from exc

        bars.sort(key=lambda bar: bar.timestamp)
        logger.info("Loaded %d bars for %s", len(bars), symbol)
        return bars

    def load_many(self, symbols: Iterable[str]) -> Dict[str, List[PriceBar]]:
        return {symbol: self.load(symbol) for symbol in symbols}
