"""tradesim.backtest.metrics

Performance metrics over a finished run.

Inputs are the CLOSED trades and the equity curve. Ratios are plain fractions
(0.05 == 5%). No risk-free rate and no per-period annualisation of the Sharpe
ratio: it is mean / stdev of bar-to-bar returns.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date

import numpy as np

from tradesim.core.time import ensure_utc
from tradesim.core.types import EquityCurvePoint, PerformanceMetrics, Trade

TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365.25


def period_returns(values: Sequence[float]) -> np.ndarray:
    """Simple returns between consecutive values. Steps from a non-positive value are dropped."""

    v = np.asarray(values, dtype=np.float64)
    if v.size < 2:
        return np.zeros(0, dtype=np.float64)
    prev = v[:-1]
    cur = v[1:]
    ok = prev > 0
    return (cur[ok] - prev[ok]) / prev[ok]


def daily_returns(points: Sequence[EquityCurvePoint]) -> np.ndarray:
    """Returns between the last point of each UTC calendar day."""

    closes: dict[date, float] = {}
    for p in points:
        closes[ensure_utc(p.timestamp).date()] = p.total_value  # last of day wins
    return period_returns(list(closes.values()))


def sharpe_ratio(returns: np.ndarray) -> float:
    r = np.asarray(returns, dtype=np.float64)
    if r.size < 2:
        return 0.0
    sd = float(np.std(r, ddof=1))
    if sd == 0.0:
        return 0.0
    return float(np.mean(r)) / sd


def max_drawdown(values: Sequence[float], initial: float | None = None) -> float:
    """Largest peak-to-trough decline as a fraction in [0, 1]."""

    v = np.asarray(values, dtype=np.float64)
    if v.size == 0:
        return 0.0
    peak = np.maximum.accumulate(v)
    if initial is not None:
        peak = np.maximum(peak, float(initial))
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peak > 0, (peak - v) / peak, 0.0)
    return float(np.clip(dd.max(), 0.0, 1.0))


def annualized_return(total_return: float, days: float) -> float:
    if days <= 0:
        return float(total_return)
    growth = 1.0 + float(total_return)
    if growth <= 0:
        return -1.0
    return growth ** (DAYS_PER_YEAR / days) - 1.0


def volatility(points: Sequence[EquityCurvePoint]) -> float:
    r = daily_returns(points)
    if r.size < 2:
        return 0.0
    return float(np.std(r, ddof=1)) * float(np.sqrt(TRADING_DAYS_PER_YEAR))


def win_rate(pnls: Sequence[float]) -> float:
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit / gross loss. inf with profits and no losses, 1.0 with neither."""

    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p < 0))
    if gross_loss == 0:
        return float("inf") if gross_profit > 0 else 1.0
    return gross_profit / gross_loss


def compute_performance(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityCurvePoint],
    initial_value: float,
) -> PerformanceMetrics:
    if not equity_curve:
        return PerformanceMetrics.empty()

    values = [p.total_value for p in equity_curve]
    total_return = (values[-1] - initial_value) / initial_value
    elapsed = equity_curve[-1].timestamp - equity_curve[0].timestamp
    days = elapsed.total_seconds() / 86_400.0

    pnls = [t.pnl or 0.0 for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]

    return PerformanceMetrics(
        total_return=total_return,
        annualized_return=annualized_return(total_return, days),
        sharpe_ratio=sharpe_ratio(period_returns(values)),
        max_drawdown=max_drawdown(values, initial=initial_value),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        average_trade_return=sum(pnls) / len(pnls) if pnls else 0.0,
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        best_trade=max(pnls) if pnls else 0.0,
        worst_trade=min(pnls) if pnls else 0.0,
        average_win=sum(wins) / len(wins) if wins else 0.0,
        average_loss=abs(sum(losses) / len(losses)) if losses else 0.0,
        volatility=volatility(equity_curve),
    )
