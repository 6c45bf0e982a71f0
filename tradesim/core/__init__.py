"""tradesim.core

Core primitives.

Every other subpackage depends on this one; it depends on nothing inside tradesim.
"""

from .config import (
    BacktestExecutionConfig,
    IndicatorSpec,
    LoggingConfig,
    PortfolioConfig,
    RiskManagementConfig,
    Settings,
    SignalSet,
    SignalSpec,
    StrategyConfig,
    StrategyRiskConfig,
)
from .exceptions import (
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
from .time import ensure_utc, parse_dt, utc_now
from .types import (
    BacktestMetadata,
    BacktestResult,
    Bar,
    EquityCurvePoint,
    PerformanceMetrics,
    PortfolioSnapshot,
    Position,
    PositionSide,
    PriceSource,
    SignalType,
    Trade,
    TradeSide,
    TradeSignal,
    TradeStatus,
)

__all__ = [
    "BacktestExecutionConfig",
    "BacktestMetadata",
    "BacktestResult",
    "Bar",
    "BarProcessingError",
    "ConfigError",
    "EquityCurvePoint",
    "IndicatorSpec",
    "InsufficientFundsError",
    "LedgerError",
    "LoggingConfig",
    "NoOpenTradeFoundError",
    "PerformanceMetrics",
    "PortfolioConfig",
    "PortfolioSnapshot",
    "Position",
    "PositionNotFoundError",
    "PositionSide",
    "PriceSource",
    "RiskManagementConfig",
    "Settings",
    "SignalSet",
    "SignalSpec",
    "SignalType",
    "StrategyConfig",
    "StrategyRiskConfig",
    "StrategyValidationError",
    "Trade",
    "TradeSide",
    "TradeSignal",
    "TradeStatus",
    "TradesimError",
    "Violation",
    "ensure_utc",
    "parse_dt",
    "utc_now",
]
