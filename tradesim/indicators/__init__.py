"""tradesim.indicators

Streaming technical indicators.

Each indicator is an independent state object implementing the `Indicator`
protocol. Insufficient history yields None, never an exception.
"""

from tradesim.indicators.base import DEFAULT_MAX_HISTORY, Indicator
from tradesim.indicators.ema import ExponentialMovingAverage
from tradesim.indicators.registry import BUILTIN_INDICATORS, IndicatorFactory, IndicatorRegistry
from tradesim.indicators.rsi import RelativeStrengthIndex
from tradesim.indicators.sma import SimpleMovingAverage

__all__ = [
    "BUILTIN_INDICATORS",
    "DEFAULT_MAX_HISTORY",
    "ExponentialMovingAverage",
    "Indicator",
    "IndicatorFactory",
    "IndicatorRegistry",
    "RelativeStrengthIndex",
    "SimpleMovingAverage",
]
