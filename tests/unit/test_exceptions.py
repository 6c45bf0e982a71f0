from __future__ import annotations

from datetime import UTC, datetime

from tradesim.core.exceptions import (
    BarProcessingError,
    ConfigError,
    InsufficientFundsError,
    LedgerError,
    NoOpenTradeFoundError,
    PositionNotFoundError,
    StrategyValidationError,
    TradesimError,
    Violation,
)


def test_hierarchy() -> None:
    assert issubclass(ConfigError, TradesimError)
    assert issubclass(StrategyValidationError, ConfigError)
    for cls in (InsufficientFundsError, PositionNotFoundError, NoOpenTradeFoundError):
        assert issubclass(cls, LedgerError)
        assert issubclass(cls, TradesimError)
    assert issubclass(BarProcessingError, TradesimError)
    assert not issubclass(BarProcessingError, LedgerError)


def test_strategy_validation_error_lists_every_violation() -> None:
    err = StrategyValidationError(
        [
            Violation(code="MISSING_NAME", field="name", message="Strategy name is required"),
            Violation(code="NO_INDICATORS", field="indicators", message="At least one indicator is required"),
        ]
    )
    assert [v.code for v in err.violations] == ["MISSING_NAME", "NO_INDICATORS"]
    assert str(err) == (
        "Strategy validation failed: Strategy name is required; At least one indicator is required"
    )


def test_bar_processing_error_keeps_cause() -> None:
    ts = datetime(2024, 1, 1, tzinfo=UTC)
    cause = ZeroDivisionError("division by zero")
    err = BarProcessingError(ts, cause)
    assert err.timestamp == ts
    assert err.cause is cause
    assert str(err) == "2024-01-01T00:00:00+00:00: ZeroDivisionError: division by zero"
