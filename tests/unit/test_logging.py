from __future__ import annotations

import json
import logging

import pytest

from tradesim.core.config import LoggingConfig
from tradesim.core.log import ROOT_LOGGER, JsonFormatter, TextFormatter, configure_logging, get_logger


@pytest.fixture()
def restore_root_logger():
    logger = logging.getLogger(ROOT_LOGGER)
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)


def _record(msg: str, **extra) -> logging.LogRecord:
    rec = logging.LogRecord("tradesim.test", logging.INFO, __file__, 1, msg, (), None)
    rec.__dict__.update(extra)
    return rec


def test_get_logger_namespaces() -> None:
    assert get_logger().name == "tradesim"
    assert get_logger("tradesim.backtest.engine").name == "tradesim.backtest.engine"
    assert get_logger("plugin").name == "tradesim.plugin"


def test_json_formatter_includes_extras() -> None:
    out = json.loads(JsonFormatter().format(_record("position_opened", symbol="BTCUSD", quantity=0.1)))
    assert out["event"] == "position_opened"
    assert out["level"] == "INFO"
    assert out["logger"] == "tradesim.test"
    assert out["symbol"] == "BTCUSD"
    assert out["quantity"] == 0.1


def test_text_formatter_appends_key_values() -> None:
    line = TextFormatter().format(_record("bar_processing_failed", timestamp="2024-01-01"))
    assert "INFO tradesim.test bar_processing_failed" in line
    assert line.endswith("timestamp=2024-01-01")


def test_configure_logging_is_idempotent(restore_root_logger: logging.Logger) -> None:
    configure_logging(LoggingConfig(level="DEBUG"))
    configure_logging(LoggingConfig(level="WARNING", json_output=True))

    ours = [h for h in restore_root_logger.handlers if getattr(h, "_tradesim_handler", False)]
    assert len(ours) == 1
    assert isinstance(ours[0].formatter, JsonFormatter)
    assert restore_root_logger.level == logging.WARNING


def test_library_is_silent_by_default() -> None:
    assert any(isinstance(h, logging.NullHandler) for h in logging.getLogger(ROOT_LOGGER).handlers)
