"""tradesim.core.exceptions

Errors are part of the interface.

Only configuration failures stop a run. Ledger errors skip one signal; anything
else raised while processing a bar skips that bar.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


class TradesimError(Exception):
    """Base exception for tradesim."""


class ConfigError(TradesimError):
    """Configuration is missing, invalid, or inconsistent."""


@dataclass(frozen=True, slots=True)
class Violation:
    code: str
    field: str
    message: str


class StrategyValidationError(ConfigError):
    """Strategy definition is malformed. Carries every violation, not just the first."""

    def __init__(self, violations: list[Violation]) -> None:
        self.violations = list(violations)
        joined = "; ".join(v.message for v in self.violations)
        super().__init__(f"Strategy validation failed: {joined}")


class LedgerError(TradesimError):
    """A single ledger operation could not be applied."""


class InsufficientFundsError(LedgerError):
    """Not enough cash, or the order breaches the position size limit."""


class PositionNotFoundError(LedgerError):
    """No position is held for the symbol."""


class NoOpenTradeFoundError(LedgerError):
    """A position exists but its open trade record does not."""


class BarProcessingError(TradesimError):
    """Any other failure while processing one bar. The run continues."""

    def __init__(self, timestamp: datetime, cause: BaseException) -> None:
        self.timestamp = timestamp
        self.cause = cause
        super().__init__(f"{timestamp.isoformat()}: {type(cause).__name__}: {cause}")
