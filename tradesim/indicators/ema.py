"""tradesim.indicators.ema

Exponential moving average.

alpha = 2 / (period + 1). The first observed value seeds the average, so the
EMA is ready after exactly one sample (unlike the SMA).
"""

from __future__ import annotations

from tradesim.core.types import Bar, PriceSource
from tradesim.indicators.base import DEFAULT_MAX_HISTORY, check_period, lookback, new_history


class ExponentialMovingAverage:
    kind = "EMA"

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
        self.name = name or f"ema_{self.period}"
        self.smoothing_factor = 2.0 / (self.period + 1)
        self.previous_ema: float | None = None
        self._values = new_history(max_history)

    def update(self, bar: Bar) -> None:
        price = bar.field(self.source)
        if self.previous_ema is None:
            self.previous_ema = price
        else:
            a = self.smoothing_factor
            self.previous_ema = price * a + self.previous_ema * (1.0 - a)
        self._values.append(self.previous_ema)

    def value(self, lag: int = 0) -> float | None:
        return lookback(self._values, lag)

    def is_ready(self) -> bool:
        return self.previous_ema is not None

    def reset(self) -> None:
        self.previous_ema = None
        self._values.clear()

    def history(self) -> list[float | None]:
        return list(self._values)
