"""tradesim.indicators.registry

Indicator type name -> factory.

A factory is any callable accepting `(period, *, source, name, max_history)`.
The three built-ins are registered on construction; callers may register more.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from tradesim.core.types import PriceSource
from tradesim.indicators.base import DEFAULT_MAX_HISTORY, Indicator
from tradesim.indicators.ema import ExponentialMovingAverage
from tradesim.indicators.rsi import RelativeStrengthIndex
from tradesim.indicators.sma import SimpleMovingAverage

IndicatorFactory = Callable[..., Indicator]

BUILTIN_INDICATORS: dict[str, IndicatorFactory] = {
    "SMA": SimpleMovingAverage,
    "EMA": ExponentialMovingAverage,
    "RSI": RelativeStrengthIndex,
}


class IndicatorRegistry:
    def __init__(self, *, builtins: bool = True) -> None:
        self._factories: dict[str, IndicatorFactory] = dict(BUILTIN_INDICATORS) if builtins else {}

    def register(self, type_name: str, factory: IndicatorFactory) -> None:
        self._factories[type_name.upper()] = factory

    def unregister(self, type_name: str) -> None:
        self._factories.pop(type_name.upper(), None)

    def available(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, type_name: object) -> bool:
        return isinstance(type_name, str) and type_name.upper() in self._factories

    def create(
        self,
        type_name: str,
        *,
        name: str,
        period: Any = None,
        source: PriceSource | str = PriceSource.CLOSE,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> Indicator:
        """Instantiate an indicator.

        Raises:
            KeyError: unknown type.
            ValueError: bad period or source.
        """

        factory = self._factories.get(type_name.upper())
        if factory is None:
            raise KeyError(f"Unsupported indicator type: {type_name}")

        src = PriceSource(str(source).lower())
        if period is None:
            # Only indicators with a default period (RSI) survive this.
            try:
                return factory(source=src, name=name, max_history=max_history)
            except TypeError as e:
                raise ValueError(f"Indicator {name!r} ({type_name}) requires a period") from e

        try:
            return factory(period, source=src, name=name, max_history=max_history)
        except TypeError as e:
            raise ValueError(f"Indicator {name!r} has an invalid period: {period!r}") from e
