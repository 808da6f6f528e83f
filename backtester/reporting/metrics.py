"""
Performance metrics calculations.

This module provides helpers to compute common performance statistics
from a list of trades and an equity curve.  Inputs are ``Decimal``;
the statistics are floats because they are only used for reporting.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
import math
from decimal import Decimal

from ..execution.models import EquityPoint, Trade


def compute_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: Optional[Decimal] = None,
) -> Dict[str, Any]:
    """Compute a set of summary statistics for the backtest.

    Parameters
    ----------
    trades : sequence of Trade
        Completed trades in execution order.
    equity_curve : sequence of EquityPoint
        Net asset value after each processed timestamp.
    initial_capital : Decimal, optional
        Starting value for the return and drawdown figures.  Defaults to
        the first point of the equity curve.

    Returns
    -------
    dict
        Dictionary of performance metrics.
    """
    if not equity_curve:
        return {
            'total_return': 0.0,
            'max_drawdown': 0.0,
            'sharpe': 0.0,
            'win_rate': 0.0,
            'profit_factor': 0.0,
            'avg_trade': 0.0,
            'num_trades': len(trades),
        }

    if initial_capital is not None:
        starting_equity = float(initial_capital)
    else:
        starting_equity = float(equity_curve[0].equity)
    ending_equity = float(equity_curve[-1].equity)
    total_return = (ending_equity - starting_equity) / starting_equity if starting_equity else 0.0

    # Compute drawdown
    max_equity = starting_equity
    max_drawdown = 0.0
    for point in equity_curve:
        equity = float(point.equity)
        if equity > max_equity:
            max_equity = equity
        drawdown = (max_equity - equity) / max_equity if max_equity > 0 else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown

    # Compute trade returns and Sharpe ratio
    pnls: List[float] = [float(t.gross_pnl) for t in trades]
    returns: List[float] = []
    for trade, pnl in zip(trades, pnls):
        notional = float(trade.entry_price * trade.quantity)
        if notional != 0:
            returns.append(pnl / notional)
    if returns:
        mean_ret = sum(returns) / len(returns)
        variance = sum((r - mean_ret) ** 2 for r in returns) / len(returns)
        std_dev = math.sqrt(variance)
        sharpe = (mean_ret / std_dev) * math.sqrt(len(returns)) if std_dev > 0 else 0.0
    else:
        sharpe = 0.0

    # Win rate and profit factor
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    win_rate = len(wins) / len(pnls) if pnls else 0.0
    gross_profit = sum(wins)
    gross_loss = -sum(losses) if losses else 0.0
    profit_factor = gross_profit / gross_loss if gross_loss > 0 else 0.0

    avg_trade = sum(pnls) / len(pnls) if pnls else 0.0

    return {
        'total_return': total_return,
        'max_drawdown': max_drawdown,
        'sharpe': sharpe,
        'win_rate': win_rate,
        'profit_factor': profit_factor,
        'avg_trade': avg_trade,
        'num_trades': len(trades),
    }
