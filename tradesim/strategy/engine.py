"""tradesim.strategy.engine

Per-bar strategy evaluation.

For each bar:
1) update every indicator, append the bar to the strategy's history
2) evaluate every buy and sell condition against current values
3) emit one signal per firing condition, ordered by priority (lower first)

A condition that raises is logged and counts as "did not fire". Anything else
that raises propagates: the backtest engine records it as a failed bar. A
failing indicator does not stop the others or the bar history from advancing.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime

from tradesim.core.config import Settings, StrategyConfig
from tradesim.core.log import get_logger
from tradesim.core.time import utc_now
from tradesim.core.types import Bar, SignalType, TradeSignal
from tradesim.indicators.registry import IndicatorFactory, IndicatorRegistry
from tradesim.strategy.compiler import (
    CompiledCondition,
    CompiledStrategy,
    ValidationResult,
    compile_strategy,
    validate_strategy,
)


@dataclass
class StrategyExecutionStats:
    strategy_id: str
    total_executions: int = 0
    total_signals: int = 0
    buy_signals: int = 0
    sell_signals: int = 0
    average_execution_ms: float = 0.0
    last_execution: datetime = field(default_factory=utc_now)
    error_count: int = 0
    success_rate: float = 1.0


class StrategyEngine:
    def __init__(
        self,
        *,
        registry: IndicatorRegistry | None = None,
        logger: logging.Logger | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.registry = registry or IndicatorRegistry()
        self.logger = logger or get_logger(__name__)
        self.settings = settings or Settings()
        self._stats: dict[str, StrategyExecutionStats] = {}

    # -- registry ---------------------------------------------------------

    def available_indicators(self) -> list[str]:
        return self.registry.available()

    def register_indicator(self, type_name: str, factory: IndicatorFactory) -> None:
        self.registry.register(type_name, factory)
        self.logger.info("indicator_registered", extra={"indicator_type": type_name})

    def unregister_indicator(self, type_name: str) -> None:
        self.registry.unregister(type_name)
        self.logger.info("indicator_unregistered", extra={"indicator_type": type_name})

    # -- compilation ------------------------------------------------------

    def validate_strategy(self, config: StrategyConfig) -> ValidationResult:
        return validate_strategy(
            config,
            self.registry,
            max_history=self.settings.max_history,
            default_priority=self.settings.default_priority,
        )

    def load_strategy(self, config: StrategyConfig) -> CompiledStrategy:
        """Validate, template and compile a strategy definition.

        Raises:
            StrategyValidationError: with every violation found.
        """

        self.logger.info("strategy_loading", extra={"strategy": config.name})
        compiled = compile_strategy(
            config,
            self.registry,
            max_history=self.settings.max_history,
            default_priority=self.settings.default_priority,
        )
        self._stats[compiled.id] = StrategyExecutionStats(strategy_id=compiled.id)
        self.logger.info(
            "strategy_compiled",
            extra={
                "strategy": compiled.name,
                "strategy_id": compiled.id,
                "indicators": len(compiled.indicators),
                "buy_conditions": len(compiled.buy_conditions),
                "sell_conditions": len(compiled.sell_conditions),
            },
        )
        return compiled

    # -- execution --------------------------------------------------------

    def execute_strategy(self, strategy: CompiledStrategy, bar: Bar) -> list[TradeSignal]:
        start = time.perf_counter()
        stats = self._stats.setdefault(strategy.id, StrategyExecutionStats(strategy_id=strategy.id))

        try:
            # Indicators and bar history advance in lockstep even when one indicator fails.
            failure: Exception | None = None
            for indicator in strategy.indicators.values():
                try:
                    indicator.update(bar)
                except Exception as e:  # noqa: BLE001 - re-raised once all state has advanced
                    failure = failure or e
            strategy.bar_history.append(bar)
            if failure is not None:
                raise failure

            signals: list[TradeSignal] = []
            for cond in (*strategy.buy_conditions, *strategy.sell_conditions):
                if self._evaluate(strategy, cond):
                    signals.append(self._signal(strategy, cond, bar))

            # Stable: equal priorities keep buy-before-sell declaration order.
            signals.sort(key=lambda s: s.priority)
        except Exception:
            stats.total_executions += 1
            stats.error_count += 1
            stats.success_rate = (stats.total_executions - stats.error_count) / stats.total_executions
            self.logger.exception("strategy_execution_failed", extra={"strategy": strategy.name})
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        stats.total_executions += 1
        stats.total_signals += len(signals)
        stats.buy_signals += sum(1 for s in signals if s.type == SignalType.BUY)
        stats.sell_signals += sum(1 for s in signals if s.type == SignalType.SELL)
        stats.last_execution = utc_now()
        n = stats.total_executions
        stats.average_execution_ms = (stats.average_execution_ms * (n - 1) + elapsed_ms) / n
        stats.success_rate = (n - stats.error_count) / n
        return signals

    def _evaluate(self, strategy: CompiledStrategy, cond: CompiledCondition) -> bool:
        try:
            return cond.evaluate(strategy)
        except Exception:  # noqa: BLE001 - one bad condition must not abort the bar
            self.logger.exception(
                "condition_evaluation_failed",
                extra={"strategy": strategy.name, "condition_id": cond.id},
            )
            return False

    @staticmethod
    def _signal(strategy: CompiledStrategy, cond: CompiledCondition, bar: Bar) -> TradeSignal:
        return TradeSignal(
            type=cond.side,
            symbol=strategy.symbol,
            price=bar.close,
            timestamp=bar.timestamp,
            reason=cond.reason,
            strategy_name=strategy.name,
            priority=cond.priority,
            condition_id=cond.id,
            size_pct=strategy.position_size if cond.side == SignalType.BUY else None,
        )

    def get_execution_stats(self, strategy_id: str) -> StrategyExecutionStats:
        stats = self._stats.get(strategy_id)
        if stats is None:
            raise KeyError(f"No execution stats found for strategy: {strategy_id}")
        return dataclasses.replace(stats)
