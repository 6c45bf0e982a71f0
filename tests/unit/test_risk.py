from __future__ import annotations

from datetime import UTC, datetime

import pytest

from tradesim.core.config import RiskManagementConfig
from tradesim.core.types import Position
from tradesim.portfolio.risk import STOP_LOSS, TAKE_PROFIT, DrawdownHalt, drawdown, evaluate_exit, price_change

T1 = datetime(2024, 1, 1, tzinfo=UTC)


def _pos(avg: float) -> Position:
    return Position(symbol="X", quantity=1.0, average_price=avg, entry_time=T1, updated_at=T1)


def test_price_change() -> None:
    assert price_change(_pos(100), 94) == pytest.approx(-0.06)


@pytest.mark.parametrize(
    ("price", "expected"),
    [(94.0, STOP_LOSS), (95.0, STOP_LOSS), (96.0, None), (109.0, None), (110.0, TAKE_PROFIT), (150.0, TAKE_PROFIT)],
)
def test_evaluate_exit_thresholds(price: float, expected: str | None) -> None:
    rules = RiskManagementConfig(stop_loss_percent=0.05, take_profit_percent=0.1)
    assert evaluate_exit(_pos(100), price, rules) == expected


def test_unset_rules_never_exit() -> None:
    assert evaluate_exit(_pos(100), 1.0, RiskManagementConfig(take_profit_percent=0.1)) is None
    assert evaluate_exit(_pos(100), 1_000.0, RiskManagementConfig(stop_loss_percent=0.1)) is None


def test_drawdown_fraction() -> None:
    assert drawdown(100, 80) == pytest.approx(0.2)
    assert drawdown(100, 120) == pytest.approx(-0.2)
    assert drawdown(0, 10) == 0.0


def test_drawdown_halt_engages_once_and_stays() -> None:
    halt = DrawdownHalt(limit=0.1)
    assert halt.allows_new_positions
    assert halt.update(0.05) is False
    assert halt.update(0.10) is True
    assert not halt.allows_new_positions
    # never auto-releases
    assert halt.update(0.0) is False
    assert halt.engaged


def test_drawdown_halt_without_limit() -> None:
    halt = DrawdownHalt()
    assert halt.update(0.99) is False
    assert halt.allows_new_positions
