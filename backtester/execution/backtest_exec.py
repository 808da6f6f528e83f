"""
Backtest execution engine.

This module contains the `BacktestEngine` class which orchestrates
loading historical data, iterating over bars in time order, feeding
them to a strategy and letting the portfolio simulate fills, margin
checks and liquidations.  Several symbols can be traded in one run;
their bar streams are merged by timestamp.
"""

from __future__ import annotations

import heapq
import logging
from decimal import Decimal
from itertools import groupby
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..config.collateral import load_collateral_ratios, require_assets
from ..config.schema import Config
from ..data.csv_data import CSVDataLoader
from ..errors import ConfigError
from ..strategy.base import Strategy
from ..strategy.scripted import build_strategy
from .models import QUOTE_ASSET, AccountMode, BacktestResult, EquityPoint, PriceBar
from .portfolio import Portfolio, base_asset, is_supported_symbol

logger = logging.getLogger(__name__)


def merge_streams(data: Mapping[str, Sequence[PriceBar]]) -> Iterator[Tuple[int, List[Tuple[str, PriceBar]]]]:
    """Yield ``(timestamp, [(symbol, bar), ...])`` in ascending time.

    Each stream must already be sorted by timestamp; the streams are
    merged, not sorted.  Within a timestamp bars keep the order of
    `data`.
    """
    streams = [_tagged(symbol, bars) for symbol, bars in data.items()]
    merged = heapq.merge(*streams, key=lambda item: item[1].timestamp)
    for timestamp, group in groupby(merged, key=lambda item: item[1].timestamp):
        yield timestamp, list(group)


def _tagged(symbol: str, bars: Sequence[PriceBar]) -> Iterator[Tuple[str, PriceBar]]:
    for bar in bars:
        yield symbol, bar


class BacktestEngine:
    """Run a strategy over historical bars and report the outcome.

    Parameters
    ----------
    config : Config
        Run configuration: capital, account mode, costs and margin
        settings, data location and the strategy definition.
    strategy : Strategy, optional
        Strategy instance to drive.  When omitted a fresh one is built
        from ``config.strategy`` for every call to `run`.
    collateral_ratios : Mapping[str, Decimal], optional
        Already-resolved collateral table.  When omitted in margin mode
        the table is loaded from ``config.margin.collateral_ratios_file``.
    """

    def __init__(
        self,
        config: Config,
        strategy: Optional[Strategy] = None,
        collateral_ratios: Optional[Mapping[str, Decimal]] = None,
    ) -> None:
        self.config = config
        self.strategy = strategy
        self.collateral_ratios = collateral_ratios
        self.data_loader = CSVDataLoader(config.data.csv_dir)

    def _resolve_collateral(self, symbols: Sequence[str]) -> Optional[Mapping[str, Decimal]]:
        if self.config.account_mode is not AccountMode.MARGIN:
            return None
        ratios = self.collateral_ratios
        if ratios is None:
            ratios = load_collateral_ratios(self.config.margin.collateral_ratios_file)
        require_assets(ratios, [QUOTE_ASSET] + [base_asset(s) for s in symbols])
        return ratios

    def build_portfolio(self, symbols: Sequence[str]) -> Portfolio:
        """Create the portfolio for a run, validating the configuration first."""
        unsupported = [s for s in symbols if not is_supported_symbol(s)]
        if unsupported:
            raise ConfigError(f"Only {QUOTE_ASSET}-quoted symbols are supported, got: {', '.join(unsupported)}")
        cfg = self.config
        return Portfolio(
            initial_capital=cfg.initial_capital,
            account_mode=cfg.account_mode,
            fee_pct=cfg.costs.fee_pct,
            slippage_pct=cfg.costs.slippage_pct,
            leverage=cfg.margin.leverage,
            maintenance_margin_factor=cfg.margin.maintenance_margin_factor,
            collateral_ratios=self._resolve_collateral(symbols),
            allow_multiple_symbols=cfg.margin.allow_multiple_symbols,
        )

    def run(self, data: Optional[Mapping[str, Sequence[PriceBar]]] = None) -> BacktestResult:
        """Execute the backtest.

        Parameters
        ----------
        data : mapping of symbol to bars, optional
            Historical bars per symbol, each ascending by timestamp.  When
            omitted the configured symbols are loaded from CSV.

        Returns
        -------
        BacktestResult
            Final value, P/L, completed trades and the equity curve.
        """
        if data is None:
            data = self.data_loader.load_many(self.config.symbols)
        portfolio = self.build_portfolio(list(data))
        strategy = self.strategy if self.strategy is not None else build_strategy(self.config)

        cfg = self.config
        logger.info(
            "Starting %s backtest with initial capital %s using %s",
            cfg.account_mode.name, cfg.initial_capital, type(strategy).__name__,
        )
        logger.info(
            "Simulation costs: fee=%s%%, slippage=%s%%",
            cfg.costs.fee_pct * 100, cfg.costs.slippage_pct * 100,
        )

        last_close: Dict[str, Decimal] = {}
        equity_curve: List[EquityPoint] = []
        for timestamp, bars in merge_streams(data):
            for symbol, bar in bars:
                last_close[base_asset(symbol)] = bar.close
            portfolio.update_market(timestamp, last_close)
            if portfolio.account_mode is AccountMode.MARGIN:
                portfolio.check_liquidation()
            for symbol, bar in bars:
                strategy.on_bar(symbol, bar, portfolio)
            equity_curve.append(portfolio.equity_point())

        logger.info("Backtest simulation loop completed after %d timestamps", len(equity_curve))
        return portfolio.calculate_result(equity_curve)
