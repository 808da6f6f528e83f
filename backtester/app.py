"""
Application entry point.

This module defines a simple command-line interface for running a
backtest.  It loads the YAML configuration, reads the historical bars,
runs the engine, prints a summary and writes the report files.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config.schema import load_config
from .errors import BacktestError
from .execution.backtest_exec import BacktestEngine
from .reporting.report import format_results, generate_backtest_report


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command-line arguments and run the backtest."""
    parser = argparse.ArgumentParser(description="Decimal backtester for spot and margin accounts")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--data-dir', default=None, help="Override the CSV data directory")
    parser.add_argument('--out-dir', default='results', help="Directory for report files")
    parser.add_argument('--no-report', action='store_true', help="Only print the summary")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        # Override data directory from CLI if provided
        if args.data_dir:
            config.data.csv_dir = args.data_dir

        logging.info("Running %s backtest on %s...", config.account_mode.name, ", ".join(config.symbols))
        engine = BacktestEngine(config)
        result = engine.run()
    except (BacktestError, OSError, ValueError) as exc:
        logging.error("Backtest aborted: %s", exc)
        return 2

    print(format_results(result))
    if not args.no_report:
        generate_backtest_report(result, out_dir=args.out_dir, initial_capital=config.initial_capital)
        logging.info("Backtest complete. Results saved to the '%s' directory.", args.out_dir)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
