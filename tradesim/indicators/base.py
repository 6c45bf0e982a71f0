"""tradesim.indicators.base

Streaming indicator contract.

An indicator consumes one bar at a time and keeps a bounded history of what it
computed. Index 0 of the lookback is the most recent value.

Not enough data is not an error: `value()` returns None and callers treat None
as "cannot fire". Indicators never raise from `update` or `value`.

There is no shared base class. Each indicator owns its state; the helpers below
are plain functions.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Protocol, runtime_checkable

from tradesim.core.types import Bar, PriceSource

DEFAULT_MAX_HISTORY = 1000


@runtime_checkable
class Indicator(Protocol):
    name: str
    period: int
    source: PriceSource

    def update(self, bar: Bar) -> None: ...

    def value(self, lag: int = 0) -> float | None: ...

    def is_ready(self) -> bool: ...

    def reset(self) -> None: ...

    def history(self) -> list[float | None]: ...


def check_period(period: int) -> int:
    if isinstance(period, bool) or int(period) != period or int(period) <= 0:
        raise ValueError(f"period must be a positive integer, got {period!r}")
    return int(period)


def new_history(max_history: int) -> deque[float | None]:
    if int(max_history) <= 0:
        raise ValueError(f"max_history must be >= 1, got {max_history!r}")
    return deque(maxlen=int(max_history))


def lookback(values: deque[float | None], lag: int) -> float | None:
    """Value `lag` steps back (0 = latest). None when out of range or undefined."""

    if lag < 0 or lag >= len(values):
        return None
    v = values[-1 - lag]
    if v is None or not math.isfinite(v):
        return None
    return v
