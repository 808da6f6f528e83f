"""
Timestamp utilities.

Bars and trades carry integer epoch milliseconds.  These helpers
convert them to timezone-aware `pandas.Timestamp` values for reports.
"""

from __future__ import annotations

import pandas as pd


def ms_to_timestamp(timestamp_ms: int, tz_name: str = "UTC") -> pd.Timestamp:
    """Convert epoch milliseconds to a `pandas.Timestamp` in `tz_name`."""
    ts = pd.Timestamp(int(timestamp_ms), unit="ms", tz="UTC")
    return ts.tz_convert(tz_name)


def ms_to_iso(timestamp_ms: int, tz_name: str = "UTC") -> str:
    return ms_to_timestamp(timestamp_ms, tz_name).isoformat()
