"""tradesim.core.log

Stdlib logging, injected.

Components take an optional `logging.Logger` and fall back to a logger in the
`tradesim` namespace, which carries a NullHandler. Nothing is printed unless a
caller opts in with `configure_logging`.

Messages are snake_case event names; context travels in `extra={...}`.
"""

from __future__ import annotations

import json
import logging

from tradesim.core.config import LoggingConfig

ROOT_LOGGER = "tradesim"

# LogRecord attributes that are not user-supplied `extra` fields.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime", "taskName"}
)


def get_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def _extras(record: logging.LogRecord) -> dict[str, object]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED and not k.startswith("_")}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(_extras(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, sort_keys=False)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extras(record)
        if not extras:
            return base
        kv = " ".join(f"{k}={v}" for k, v in extras.items())
        return f"{base} {kv}"


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Attach a single stream handler to the `tradesim` logger.

    Idempotent: a handler installed by a previous call is replaced, not duplicated.
    """

    cfg = cfg or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER)
    for h in list(logger.handlers):
        if getattr(h, "_tradesim_handler", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if cfg.json_output else TextFormatter())
    handler._tradesim_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(cfg.level)
    return logger
