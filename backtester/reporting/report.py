"""
Report generation utilities.

This module turns a `BacktestResult` into human-readable artefacts:
CSV files of trades and equity curve, a JSON summary of performance
metrics, a PNG chart of the equity curve and a console summary.
"""

from __future__ import annotations

import os
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import BacktestResult
from ..utils.timeutils import ms_to_iso
from .metrics import compute_metrics


def _money(value: Decimal) -> str:
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def format_results(result: BacktestResult) -> str:
    """Render the headline figures of a run as a text block."""
    sign = "-" if result.pnl < 0 else ""
    lines = [
        "",
        "================== Backtest Results ==================",
        f"Final Portfolio Value: ${_money(result.final_value)}",
        f"Total P/L:             {sign}${_money(abs(result.pnl))} ({result.pnl_percent.quantize(Decimal('0.01'))}%)",
        f"Total Trades Executed: {result.total_trades}",
        "======================================================",
        "",
    ]
    return "\n".join(lines)


def generate_backtest_report(
    result: BacktestResult,
    out_dir: str = "results",
    initial_capital: Optional[Decimal] = None,
) -> None:
    """Generate report files for a backtest run.

    Creates the output directory if it does not exist and writes the
    following files:

    - `trades.csv` – detailed list of trades
    - `equity_curve.csv` – net asset value after each timestamp
    - `summary.json` – final value, P/L and performance metrics
    - `equity_curve.png` – line chart of the equity curve
    """
    os.makedirs(out_dir, exist_ok=True)

    # Trades CSV
    columns = ['symbol', 'direction', 'quantity', 'timestamp_entry', 'timestamp_exit', 'entry', 'exit', 'gross_pnl']
    trades_data = [
        {
            'symbol': t.symbol,
            'direction': t.direction.name,
            'quantity': str(t.quantity),
            'timestamp_entry': ms_to_iso(t.entry_timestamp),
            'timestamp_exit': ms_to_iso(t.exit_timestamp),
            'entry': str(t.entry_price),
            'exit': str(t.exit_price),
            'gross_pnl': str(t.gross_pnl),
        }
        for t in result.trades
    ]
    df_trades = pd.DataFrame(trades_data, columns=columns)
    trades_path = os.path.join(out_dir, 'trades.csv')
    df_trades.to_csv(trades_path, index=False)

    # Equity curve CSV
    eq_data = [
        {
            'timestamp': ms_to_iso(pt.timestamp),
            'equity': str(pt.equity),
        }
        for pt in result.equity_curve
    ]
    df_eq = pd.DataFrame(eq_data, columns=['timestamp', 'equity'])
    eq_path = os.path.join(out_dir, 'equity_curve.csv')
    df_eq.to_csv(eq_path, index=False)

    # Summary JSON
    summary = {
        'final_value': str(result.final_value),
        'pnl': str(result.pnl),
        'pnl_percent': str(result.pnl_percent),
        'total_trades': result.total_trades,
        'metrics': compute_metrics(result.trades, result.equity_curve, initial_capital),
    }
    summary_path = os.path.join(out_dir, 'summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(summary, fh, indent=2, ensure_ascii=False)

    # Equity curve plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_eq.empty:
        ax.plot(pd.to_datetime(df_eq['timestamp']), df_eq['equity'].astype(float), linewidth=1.5)
        ax.set_title('Equity Curve')
        ax.set_xlabel('Time')
        ax.set_ylabel('Net Asset Value (USDT)')
        fig.autofmt_xdate()
    fig.tight_layout()
    plot_path = os.path.join(out_dir, 'equity_curve.png')
    fig.savefig(plot_path)
    plt.close(fig)
