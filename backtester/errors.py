"""
Exception hierarchy for the backtester.

Only usage and configuration problems are raised.  Orders that cannot
be filled (insufficient cash, insufficient margin, a second symbol in
single-position mode) are logged and ignored by the portfolio instead.
"""

from __future__ import annotations


class BacktestError(Exception):
    """Base class for errors that abort a backtest run."""


class ConfigError(BacktestError, ValueError):
    """Raised when the run configuration is missing or malformed."""


class CollateralRatioError(ConfigError):
    """Raised when the collateral ratio table is unusable for a margin run."""


class ShortSellingError(BacktestError):
    """Raised when a short position is requested on a spot-only account."""


class MissingPriceError(BacktestError):
    """Raised when an asset with a non-zero balance has no current price."""
