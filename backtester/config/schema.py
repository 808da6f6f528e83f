"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with defaults for any missing fields.

Monetary values and percentages are converted to ``Decimal`` through
their string form, so a YAML float such as ``0.001`` becomes exactly
``Decimal("0.001")``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import yaml

from ..errors import ConfigError
from ..execution.models import QUOTE_ASSET, AccountMode, TradeDirection


@dataclass
class CostsConfig:
    """Models trading costs.

    Attributes
    ----------
    fee_pct : Decimal
        Fee charged on the notional value of every fill, as a fraction
        (``0.001`` is 0.1 %).
    slippage_pct : Decimal
        Adverse price move applied to every fill, as a fraction of the
        reference price.
    """

    fee_pct: Decimal = Decimal("0")
    slippage_pct: Decimal = Decimal("0")


@dataclass
class MarginConfig:
    """Margin account parameters.  Ignored on spot-only accounts.

    Attributes
    ----------
    leverage : int
        Leverage used to derive the initial margin rate.
    maintenance_margin_factor : Decimal
        Fraction of locked initial margin below which equity triggers a
        liquidation of all positions.
    collateral_ratios_file : str, optional
        YAML table of collateral ratios.  ``None`` uses the table shipped
        with the package.
    allow_multiple_symbols : bool
        Hold positions on several symbols at once instead of rejecting
        orders for a second symbol.
    """

    leverage: int = 1
    maintenance_margin_factor: Decimal = Decimal("0.5")
    collateral_ratios_file: Optional[str] = None
    allow_multiple_symbols: bool = False


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    csv_dir : str
        Directory containing one ``{SYMBOL}.csv`` file per symbol.
    """

    csv_dir: str = "data"


@dataclass
class ActionConfig:
    """One scripted order: submit `direction` `quantity` of `symbol` on bar `bar`."""

    bar: int
    symbol: str
    direction: TradeDirection
    quantity: Decimal


@dataclass
class StrategyConfig:
    """Strategy selection.  Only ``scripted`` is built in."""

    type: str = "scripted"
    actions: List[ActionConfig] = field(default_factory=list)


@dataclass
class Config:
    """Root configuration for a backtest run.

    Attributes
    ----------
    symbols : List[str]
        Traded pairs, all quoted in USDT (e.g. ``["BTCUSDT"]``).
    initial_capital : Decimal
        Starting USDT balance.
    account_mode : AccountMode
        ``SPOT_ONLY`` or ``MARGIN``.  Fixed for the whole run.
    costs : CostsConfig
        Fee and slippage.
    margin : MarginConfig
        Leverage, maintenance margin and collateral table.
    data : DataConfig
        Location of the historical bars.
    strategy : StrategyConfig
        Strategy to run.
    """

    symbols: List[str] = field(default_factory=lambda: ["BTCUSDT"])
    initial_capital: Decimal = Decimal("10000")
    account_mode: AccountMode = AccountMode.SPOT_ONLY
    costs: CostsConfig = field(default_factory=CostsConfig)
    margin: MarginConfig = field(default_factory=MarginConfig)
    data: DataConfig = field(default_factory=DataConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def to_decimal(value: Any, name: str) -> Decimal:
    """Convert a YAML scalar to ``Decimal`` or raise `ConfigError`."""
    if isinstance(value, bool) or value is None:
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return result


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _parse_actions(raw: Any) -> List[ActionConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("strategy.actions must be a list")
    actions: List[ActionConfig] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"strategy.actions[{i}] must be a mapping")
        missing = [k for k in ("bar", "symbol", "direction", "quantity") if k not in item]
        if missing:
            raise ConfigError(f"strategy.actions[{i}] is missing {', '.join(missing)}")
        try:
            direction = TradeDirection.parse(item["direction"])
        except ValueError:
            raise ConfigError(f"strategy.actions[{i}].direction must be long or short, got {item['direction']!r}") from None
        bar = _to_int(item["bar"], f"strategy.actions[{i}].bar")
        quantity = to_decimal(item["quantity"], f"strategy.actions[{i}].quantity")
        if bar < 0:
            raise ConfigError(f"strategy.actions[{i}].bar must not be negative")
        if quantity <= 0:
            raise ConfigError(f"strategy.actions[{i}].quantity must be positive")
        actions.append(ActionConfig(bar=bar, symbol=str(item["symbol"]).upper(), direction=direction, quantity=quantity))
    return actions


def validate_config(cfg: Config) -> Config:
    """Check value ranges that the dataclasses cannot express."""
    if not cfg.symbols:
        raise ConfigError("At least one symbol must be configured")
    bad_symbols = [s for s in cfg.symbols if not s.endswith(QUOTE_ASSET) or s == QUOTE_ASSET]
    if bad_symbols:
        raise ConfigError(f"Only {QUOTE_ASSET}-quoted symbols are supported, got: {', '.join(bad_symbols)}")
    if cfg.initial_capital <= 0:
        raise ConfigError("initial_capital must be positive")
    if cfg.costs.fee_pct < 0:
        raise ConfigError("costs.fee_pct must not be negative")
    if not 0 <= cfg.costs.slippage_pct < 1:
        raise ConfigError("costs.slippage_pct must be within [0, 1)")
    if cfg.margin.leverage < 1:
        raise ConfigError("margin.leverage must be at least 1")
    if not 0 < cfg.margin.maintenance_margin_factor <= 1:
        raise ConfigError("margin.maintenance_margin_factor must be within (0, 1]")
    if cfg.strategy.type != "scripted":
        raise ConfigError(f"Unknown strategy type: {cfg.strategy.type}")
    unknown = sorted({a.symbol for a in cfg.strategy.actions if a.symbol not in cfg.symbols})
    if unknown:
        raise ConfigError(f"strategy.actions reference symbols that are not configured: {', '.join(unknown)}")
    return cfg


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build a validated `Config` from a (possibly partial) dictionary."""
    # Build nested dictionaries representing the default dataclasses
    defaults: Dict[str, Any] = {
        'symbols': ["BTCUSDT"],
        'initial_capital': "10000",
        'account_mode': "spot_only",
        'costs': {
            'fee_pct': "0",
            'slippage_pct': "0",
        },
        'margin': {
            'leverage': 1,
            'maintenance_margin_factor': "0.5",
            'collateral_ratios_file': None,
            'allow_multiple_symbols': False,
        },
        'data': {
            'csv_dir': 'data',
        },
        'strategy': {
            'type': 'scripted',
            'actions': [],
        },
    }

    merged = _merge_dict(defaults, raw)
    for section in ('costs', 'margin', 'data', 'strategy'):
        if not isinstance(merged[section], dict):
            raise ConfigError(f"{section} must be a mapping, got {merged[section]!r}")

    try:
        account_mode = AccountMode.parse(merged['account_mode'])
    except ValueError:
        raise ConfigError(f"account_mode must be spot_only or margin, got {merged['account_mode']!r}") from None

    costs_cfg = CostsConfig(
        fee_pct=to_decimal(merged['costs']['fee_pct'], 'costs.fee_pct'),
        slippage_pct=to_decimal(merged['costs']['slippage_pct'], 'costs.slippage_pct'),
    )
    ratios_file = merged['margin']['collateral_ratios_file']
    margin_cfg = MarginConfig(
        leverage=_to_int(merged['margin']['leverage'], 'margin.leverage'),
        maintenance_margin_factor=to_decimal(
            merged['margin']['maintenance_margin_factor'], 'margin.maintenance_margin_factor'
        ),
        collateral_ratios_file=str(ratios_file) if ratios_file else None,
        allow_multiple_symbols=bool(merged['margin']['allow_multiple_symbols']),
    )
    data_cfg = DataConfig(csv_dir=str(merged['data']['csv_dir']))
    strategy_cfg = StrategyConfig(
        type=str(merged['strategy'].get('type', 'scripted')).lower(),
        actions=_parse_actions(merged['strategy'].get('actions')),
    )

    symbols = merged.get('symbols') or []
    if isinstance(symbols, str):
        symbols = [symbols]

    cfg = Config(
        symbols=[str(s).strip().upper() for s in symbols],
        initial_capital=to_decimal(merged['initial_capital'], 'initial_capital'),
        account_mode=account_mode,
        costs=costs_cfg,
        margin=margin_cfg,
        data=data_cfg,
        strategy=strategy_cfg,
    )
    return validate_config(cfg)


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated, validated configuration object.

    Raises
    ------
    ConfigError
        If the YAML is malformed or a value is out of range.
    """
    with open(path, "r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return config_from_dict(raw)
