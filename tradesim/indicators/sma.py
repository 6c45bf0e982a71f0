"""tradesim.indicators.sma

Simple moving average: arithmetic mean of the last `period` source values.
Undefined until `period` samples have been observed.
"""

from __future__ import annotations

import math
from collections import deque

from tradesim.core.types import Bar, PriceSource
from tradesim.indicators.base import DEFAULT_MAX_HISTORY, check_period, lookback, new_history


class SimpleMovingAverage:
    kind = "SMA"

    def __init__(
        self,
        period: int,
        *,
        source: PriceSource | str = PriceSource.CLOSE,
        name: str | None = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> None:
        self.period = check_period(period)
        self.source = PriceSource(source)
        self.name = name or f"sma_{self.period}"
        self._window: deque[float] = deque(maxlen=self.period)
        self._values = new_history(max_history)

    def update(self, bar: Bar) -> None:
        self._window.append(bar.field(self.source))
        if len(self._window) < self.period:
            self._values.append(None)
            return
        self._values.append(math.fsum(self._window) / self.period)

    def value(self, lag: int = 0) -> float | None:
        return lookback(self._values, lag)

    def is_ready(self) -> bool:
        return len(self._window) >= self.period and self.value() is not None

    def reset(self) -> None:
        self._window.clear()
        self._values.clear()

    def history(self) -> list[float | None]:
        return list(self._values)

    def window(self) -> list[float]:
        return list(self._window)
