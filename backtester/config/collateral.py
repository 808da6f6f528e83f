"""
Collateral ratio table.

A margin account values each owned asset at ``balance * price * ratio``
where the ratio discounts volatile collateral.  The table is loaded once
per run from YAML and returned as a read-only mapping.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml

from ..errors import CollateralRatioError

logger = logging.getLogger(__name__)

DEFAULT_RATIOS_FILE = Path(__file__).with_name("collateral_ratios.yaml")


def _parse_ratio(asset: str, raw: Any) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise CollateralRatioError(f"Collateral ratio for {asset} is not a number: {raw!r}")
    try:
        ratio = Decimal(str(raw))
    except InvalidOperation as exc:
        raise CollateralRatioError(f"Collateral ratio for {asset} is not a number: {raw!r}") from exc
    if not ratio.is_finite() or ratio < 0 or ratio > 1:
        raise CollateralRatioError(f"Collateral ratio for {asset} must be within [0, 1], got {ratio}")
    return ratio


def load_collateral_ratios(path: Optional[str] = None) -> Mapping[str, Decimal]:
    """Load the collateral ratio table.

    Parameters
    ----------
    path : str, optional
        YAML file mapping asset symbols to ratios.  When omitted the
        table shipped with the package is used.

    Returns
    -------
    Mapping[str, Decimal]
        Read-only mapping such as ``{"BTC": Decimal("0.95"), ...}``.

    Raises
    ------
    CollateralRatioError
        If the file is missing, cannot be parsed or holds an invalid
        ratio.  Margin valuation is meaningless without the table, so
        this is fatal for the run.
    """
    file_path = Path(path) if path else DEFAULT_RATIOS_FILE
    if not file_path.exists():
        logger.error("Collateral ratio file not found: %s", file_path)
        raise CollateralRatioError(f"Collateral ratio file not found: {file_path}")
    try:
        with file_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse collateral ratio file %s: %s", file_path, exc)
        raise CollateralRatioError(f"Failed to parse collateral ratio file: {file_path}") from exc

    if not isinstance(raw, dict) or not raw:
        raise CollateralRatioError(f"Collateral ratio file must contain a non-empty mapping: {file_path}")

    ratios: Dict[str, Decimal] = {}
    for asset, value in raw.items():
        ratios[str(asset).strip().upper()] = _parse_ratio(str(asset), value)
    logger.info("Loaded %d collateral ratio entries from %s", len(ratios), file_path)
    return MappingProxyType(ratios)


def require_assets(ratios: Mapping[str, Decimal], assets: Iterable[str]) -> None:
    """Raise `CollateralRatioError` if any of `assets` has no ratio."""
    missing = sorted({asset for asset in assets if asset not in ratios})
    if missing:
        raise CollateralRatioError(f"No collateral ratio configured for: {', '.join(missing)}")
