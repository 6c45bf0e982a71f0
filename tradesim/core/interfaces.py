"""tradesim.core.interfaces

Collaborator contracts. The core consumes these; it does not implement storage
or network access.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from tradesim.core.types import BacktestResult, Bar, Trade


@runtime_checkable
class DataProvider(Protocol):
    """Returns bars ordered ascending by timestamp. Fetching happens before a run starts."""

    def get_bars(self, symbol: str, timeframe: str, start: datetime, end: datetime) -> list[Bar]: ...


@runtime_checkable
class ResultStore(Protocol):
    def save_trade(self, trade: Trade) -> None: ...

    def save_result(self, result: BacktestResult) -> None: ...
