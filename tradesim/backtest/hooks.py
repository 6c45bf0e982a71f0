"""tradesim.backtest.hooks

Run lifecycle hooks.

The run loop is a coordinator. Hooks are where integration lives: progress
reporting, result persistence, cancellation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tradesim.core.types import BacktestResult, Bar, EquityCurvePoint, Trade

if TYPE_CHECKING:
    from tradesim.backtest.engine import BacktestRun


class BacktestHooks:
    def on_start(self, run: BacktestRun) -> None:
        return None

    def on_bar(self, run: BacktestRun, bar: Bar, point: EquityCurvePoint) -> None:
        return None

    def on_trade(self, run: BacktestRun, trade: Trade) -> None:
        return None

    def on_error(self, run: BacktestRun, error: Exception) -> None:
        return None

    def on_complete(self, run: BacktestRun, result: BacktestResult) -> None:
        return None
