from __future__ import annotations

import logging

import pytest

from tests._factories import make_bars, sma_cross_strategy
from tradesim.core.config import Settings, StrategyConfig
from tradesim.core.exceptions import StrategyValidationError
from tradesim.core.types import SignalType
from tradesim.indicators import SimpleMovingAverage
from tradesim.strategy.engine import StrategyEngine


def _always(buy: list[dict], sell: list[dict] | None = None) -> StrategyConfig:
    return StrategyConfig.model_validate(
        {
            "name": "Always",
            "parameters": {"symbol": "BTCUSD", "position_size": 0.25},
            "indicators": [{"name": "sma", "type": "SMA", "period": 1}],
            "signals": {"buy": buy, "sell": sell or []},
        }
    )


def test_crossover_emits_buy_then_sell() -> None:
    eng = StrategyEngine()
    cs = eng.load_strategy(sma_cross_strategy())

    emitted = []
    for bar in make_bars([10, 9, 8, 9, 11, 12, 11, 9, 8]):
        for sig in eng.execute_strategy(cs, bar):
            emitted.append((bar.close, sig.type))

    assert emitted[0] == (11.0, SignalType.BUY)
    assert (9.0, SignalType.SELL) in emitted
    assert [t for _, t in emitted] == [SignalType.BUY, SignalType.SELL]


def test_signal_fields() -> None:
    eng = StrategyEngine()
    cs = eng.load_strategy(_always([{"id": "b", "condition": "close > 0", "description": "always"}]))
    (bar,) = make_bars([100])
    (sig,) = eng.execute_strategy(cs, bar)

    assert sig.type == SignalType.BUY
    assert sig.symbol == "BTCUSD"
    assert sig.price == 100.0
    assert sig.timestamp == bar.timestamp
    assert sig.reason == "always"
    assert sig.strategy_name == "Always"
    assert sig.condition_id == "b"
    assert sig.size_pct == 0.25


def test_signals_sorted_by_priority_default_last() -> None:
    eng = StrategyEngine()
    cs = eng.load_strategy(
        _always(
            buy=[
                {"id": "default", "condition": "close > 0"},
                {"id": "p5", "condition": "close > 0", "priority": 5},
            ],
            sell=[{"id": "p1", "condition": "close > 0", "priority": 1}],
        )
    )
    (bar,) = make_bars([100])
    sigs = eng.execute_strategy(cs, bar)
    assert [s.condition_id for s in sigs] == ["p1", "p5", "default"]
    assert sigs[-1].priority == 999
    assert sigs[0].size_pct is None  # SELL carries no size


def test_default_priority_from_settings() -> None:
    eng = StrategyEngine(settings=Settings(default_priority=50))
    cs = eng.load_strategy(_always([{"condition": "close > 0"}]))
    assert cs.buy_conditions[0].priority == 50


def test_failing_condition_is_isolated(caplog: pytest.LogCaptureFixture) -> None:
    eng = StrategyEngine()
    cs = eng.load_strategy(
        _always(
            [
                {"id": "boom", "condition": "sma > 0", "priority": 1},
                {"id": "ok", "condition": "close > 0", "priority": 2},
            ]
        )
    )

    class Exploding(SimpleMovingAverage):
        def value(self, lag: int = 0):
            raise RuntimeError("indicator exploded")

    cs.indicators["sma"] = Exploding(1, name="sma")

    (bar,) = make_bars([100])
    with caplog.at_level(logging.ERROR, logger="tradesim"):
        sigs = eng.execute_strategy(cs, bar)

    assert [s.condition_id for s in sigs] == ["ok"]
    rec = next(r for r in caplog.records if r.getMessage() == "condition_evaluation_failed")
    assert rec.condition_id == "boom"
    assert eng.get_execution_stats(cs.id).error_count == 0


def test_execution_stats() -> None:
    eng = StrategyEngine()
    cs = eng.load_strategy(_always([{"condition": "close > 50"}], [{"condition": "close < 50"}]))
    for bar in make_bars([100, 10, 100]):
        eng.execute_strategy(cs, bar)

    st = eng.get_execution_stats(cs.id)
    assert st.strategy_id == cs.id
    assert st.total_executions == 3
    assert st.total_signals == 3
    assert st.buy_signals == 2
    assert st.sell_signals == 1
    assert st.success_rate == 1.0
    assert st.average_execution_ms >= 0.0

    # returned stats are a copy
    st.total_executions = 999
    assert eng.get_execution_stats(cs.id).total_executions == 3


def test_execution_failure_updates_stats_and_raises() -> None:
    eng = StrategyEngine()
    cs = eng.load_strategy(_always([{"condition": "close > 0"}]))

    class Broken(SimpleMovingAverage):
        def update(self, bar) -> None:
            raise RuntimeError("bad bar")

    cs.indicators["sma"] = Broken(1, name="sma")
    (bar,) = make_bars([1])
    with pytest.raises(RuntimeError):
        eng.execute_strategy(cs, bar)

    st = eng.get_execution_stats(cs.id)
    assert st.total_executions == 1
    assert st.error_count == 1
    assert st.success_rate == 0.0


def test_unknown_strategy_stats() -> None:
    with pytest.raises(KeyError):
        StrategyEngine().get_execution_stats("nope")


def test_load_invalid_strategy_raises() -> None:
    with pytest.raises(StrategyValidationError):
        StrategyEngine().load_strategy(StrategyConfig(name="broken"))


def test_registry_passthrough() -> None:
    eng = StrategyEngine()
    eng.register_indicator("SMA2", SimpleMovingAverage)
    assert "SMA2" in eng.available_indicators()
    eng.unregister_indicator("SMA2")
    assert "SMA2" not in eng.available_indicators()


def test_failing_indicator_keeps_history_aligned() -> None:
    eng = StrategyEngine()
    cfg = StrategyConfig.model_validate(
        {
            "name": "Pair",
            "parameters": {"symbol": "BTCUSD", "position_size": 0.25},
            "indicators": [{"name": "a", "type": "SMA", "period": 1}, {"name": "b", "type": "SMA", "period": 1}],
            "signals": {"buy": [{"condition": "a > 0 AND b > 0"}]},
        }
    )
    cs = eng.load_strategy(cfg)

    class FailsOnTwo(SimpleMovingAverage):
        def update(self, bar) -> None:
            if bar.close == 2.0:
                raise RuntimeError("bad bar")
            super().update(bar)

    cs.indicators["a"] = FailsOnTwo(1, name="a")
    b1, b2, b3 = make_bars([1, 2, 3])
    eng.execute_strategy(cs, b1)
    with pytest.raises(RuntimeError):
        eng.execute_strategy(cs, b2)
    eng.execute_strategy(cs, b3)

    # the healthy indicator and the bar history both saw the failed bar
    assert len(cs.bar_history) == 3
    assert cs.indicators["b"].value(1) == cs.bar_history[-2].close == 2.0
