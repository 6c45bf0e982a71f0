"""tradesim.backtest

Backtest orchestration.

- engine: run loop, cost model, end-of-run settlement
- metrics: performance summary from trades + equity curve
- hooks: lifecycle observer
- io: CSV bar loading
"""

from tradesim.backtest.engine import BacktestEngine, BacktestRun, BacktestStatus, run_backtest
from tradesim.backtest.hooks import BacktestHooks
from tradesim.backtest.io import CsvBarProvider, load_bars_csv
from tradesim.backtest.metrics import compute_performance

__all__ = [
    "BacktestEngine",
    "BacktestHooks",
    "BacktestRun",
    "BacktestStatus",
    "CsvBarProvider",
    "compute_performance",
    "load_bars_csv",
    "run_backtest",
]
