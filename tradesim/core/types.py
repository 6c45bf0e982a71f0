"""tradesim.core.types

Lightweight dataclasses for hot-path objects.

Pydantic models own IO boundaries; dataclasses keep runtime lean.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from tradesim.core.time import ensure_utc

if TYPE_CHECKING:
    from tradesim.core.config import BacktestExecutionConfig


class PriceSource(StrEnum):
    OPEN = "open"
    HIGH = "high"
    LOW = "low"
    CLOSE = "close"
    VOLUME = "volume"


class PositionSide(StrEnum):
    LONG = "LONG"


class TradeSide(StrEnum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(StrEnum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SignalType(StrEnum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True, slots=True)
class Bar:
    """One OHLCV sample. The unit of time the whole simulation advances by."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    def field(self, source: PriceSource | str) -> float:
        return float(getattr(self, PriceSource(source).value))


@dataclass(frozen=True, slots=True)
class Position:
    symbol: str
    quantity: float
    average_price: float
    entry_time: datetime
    updated_at: datetime
    side: PositionSide = PositionSide.LONG

    def market_value(self, price: float) -> float:
        return self.quantity * float(price)

    def unrealized_pnl(self, price: float) -> float:
        return (float(price) - self.average_price) * self.quantity


@dataclass(frozen=True, slots=True)
class Trade:
    id: str
    symbol: str
    side: TradeSide
    quantity: float
    entry_price: float
    entry_time: datetime
    commission: float  # cumulative: entry leg, plus exit leg once closed
    status: TradeStatus = TradeStatus.OPEN
    exit_price: float | None = None
    exit_time: datetime | None = None
    pnl: float | None = None
    entry_reason: str | None = None
    exit_reason: str | None = None
    strategy_name: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED


@dataclass(frozen=True, slots=True)
class TradeSignal:
    type: SignalType
    symbol: str
    price: float
    timestamp: datetime
    reason: str
    strategy_name: str
    priority: int
    condition_id: str
    size_pct: float | None = None  # BUY only: fraction of portfolio value


@dataclass(frozen=True, slots=True)
class PortfolioSnapshot:
    timestamp: datetime
    cash: float
    positions: tuple[Position, ...]
    total_value: float
    unrealized_pnl: float
    realized_pnl: float

    @property
    def positions_value(self) -> float:
        return self.total_value - self.cash


@dataclass(frozen=True, slots=True)
class EquityCurvePoint:
    timestamp: datetime
    total_value: float
    cash: float
    positions_value: float
    unrealized_pnl: float
    realized_pnl: float
    drawdown: float  # (peak - value) / peak, peak taken over the run so far


@dataclass(frozen=True, slots=True)
class PerformanceMetrics:
    total_return: float
    annualized_return: float
    sharpe_ratio: float
    max_drawdown: float
    win_rate: float
    profit_factor: float
    average_trade_return: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    best_trade: float
    worst_trade: float
    average_win: float
    average_loss: float
    volatility: float

    @classmethod
    def empty(cls) -> PerformanceMetrics:
        return cls(
            total_return=0.0,
            annualized_return=0.0,
            sharpe_ratio=0.0,
            max_drawdown=0.0,
            win_rate=0.0,
            profit_factor=1.0,
            average_trade_return=0.0,
            total_trades=0,
            winning_trades=0,
            losing_trades=0,
            best_trade=0.0,
            worst_trade=0.0,
            average_win=0.0,
            average_loss=0.0,
            volatility=0.0,
        )


@dataclass(frozen=True, slots=True)
class BacktestMetadata:
    strategy_name: str
    execution_time_ms: int
    data_points: int
    start_date: datetime
    end_date: datetime
    bars_processed: int = 0
    bars_failed: int = 0
    status: str = "completed"
    cancelled: bool = False


@dataclass(frozen=True, slots=True)
class BacktestResult:
    summary: PerformanceMetrics
    trades: list[Trade]  # CLOSED only
    equity_curve: list[EquityCurvePoint]
    final_portfolio: PortfolioSnapshot
    config: BacktestExecutionConfig
    metadata: BacktestMetadata
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view for result stores."""

        return {
            "summary": _jsonable(self.summary),
            "trades": [_jsonable(t) for t in self.trades],
            "equity_curve": [_jsonable(p) for p in self.equity_curve],
            "final_portfolio": _jsonable(self.final_portfolio),
            "config": self.config.model_dump(mode="json"),
            "metadata": _jsonable(self.metadata),
            "errors": list(self.errors),
        }


def _jsonable(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, StrEnum):
        return str(obj)
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    if isinstance(obj, float) and math.isinf(obj):
        # JSON has no infinity; profit factor uses it for "no losing trades".
        return "inf" if obj > 0 else "-inf"
    return obj
