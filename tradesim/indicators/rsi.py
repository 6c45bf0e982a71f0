"""tradesim.indicators.rsi

Relative strength index over a rolling window of `period` price changes.

- first value needs period + 1 samples (one seeds the last price)
- average gain/loss are simple rolling means, not Wilder smoothing
- avg_loss == 0 => 100

RSI = 100 - 100 / (1 + avg_gain / avg_loss)
"""

from __future__ import annotations

import math
from collections import deque

from tradesim.core.types import Bar, PriceSource
from tradesim.indicators.base import DEFAULT_MAX_HISTORY, check_period, lookback, new_history


class RelativeStrengthIndex:
    kind = "RSI"

    def __init__(
        self,
        period: int = 14,
        *,
        source: PriceSource | str = PriceSource.CLOSE,
        name: str | None = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> None:
        self.period = check_period(period)
        self.source = PriceSource(source)
        self.name = name or f"rsi_{self.period}"
        self.last_price: float | None = None
        self._gains: deque[float] = deque(maxlen=self.period)
        self._losses: deque[float] = deque(maxlen=self.period)
        self._values = new_history(max_history)

    def update(self, bar: Bar) -> None:
        price = bar.field(self.source)
        if self.last_price is None:
            self.last_price = price
            self._values.append(None)
            return

        change = price - self.last_price
        self.last_price = price
        self._gains.append(change if change > 0 else 0.0)
        self._losses.append(-change if change < 0 else 0.0)
        self._values.append(self._compute())

    def _compute(self) -> float | None:
        avg_gain = self.average_gain()
        avg_loss = self.average_loss()
        if avg_gain is None or avg_loss is None:
            return None
        if avg_loss == 0.0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    def value(self, lag: int = 0) -> float | None:
        return lookback(self._values, lag)

    def is_ready(self) -> bool:
        return len(self._gains) >= self.period and self.value() is not None

    def reset(self) -> None:
        self.last_price = None
        self._gains.clear()
        self._losses.clear()
        self._values.clear()

    def history(self) -> list[float | None]:
        return list(self._values)

    def average_gain(self) -> float | None:
        if len(self._gains) < self.period:
            return None
        return math.fsum(self._gains) / self.period

    def average_loss(self) -> float | None:
        if len(self._losses) < self.period:
            return None
        return math.fsum(self._losses) / self.period

    def relative_strength(self) -> float | None:
        g = self.average_gain()
        l_ = self.average_loss()
        if g is None or l_ is None or l_ == 0.0:
            return None
        return g / l_
