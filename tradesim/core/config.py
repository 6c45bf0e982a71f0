"""tradesim.core.config

Configuration surfaces:
1) Strategy definitions (YAML or dict) -> `StrategyConfig`
2) Run parameters -> `PortfolioConfig` + `BacktestExecutionConfig`
3) Process settings -> `Settings` (YAML and/or `TRADESIM_*` environment)

Field names are snake_case; camelCase keys are accepted as aliases.
`StrategyConfig` is deliberately permissive: the strategy compiler reports every
structural violation at once instead of failing on the first.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from tradesim.core.exceptions import ConfigError
from tradesim.core.time import ensure_utc


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    return raw


# ---------------------------------------------------------------------------
# Strategy definition
# ---------------------------------------------------------------------------


class IndicatorSpec(_Model):
    name: str = ""
    type: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    source: str | None = None
    period: int | str | None = None

    @property
    def resolved_source(self) -> str:
        src = self.source if self.source is not None else self.parameters.get("source", "close")
        return str(src).strip().lower()

    @property
    def resolved_period(self) -> Any:
        return self.parameters.get("period", self.period)


class SignalSpec(_Model):
    id: str | None = None
    description: str = ""
    condition: str = ""
    priority: int | None = None
    confidence: float | None = None


class SignalSet(_Model):
    buy: list[SignalSpec] = Field(default_factory=list)
    sell: list[SignalSpec] = Field(default_factory=list)


class StrategyRiskConfig(_Model):
    """Risk block of a strategy file. Values may be `{{...}}` placeholders until compiled."""

    stop_loss: float | str | None = None
    take_profit: float | str | None = None
    max_position_size: float | str | None = None
    max_drawdown: float | str | None = None


class StrategyConfig(_Model):
    name: str = ""
    description: str = ""
    version: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    indicators: list[IndicatorSpec] = Field(default_factory=list)
    signals: SignalSet = Field(default_factory=SignalSet)
    risk_management: StrategyRiskConfig | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: str | Path) -> StrategyConfig:
        p = Path(path)
        raw = _read_yaml_mapping(p)
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid strategy file {p}: {e}") from e


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------


class RiskManagementConfig(_Model):
    stop_loss_percent: float | None = Field(default=None, gt=0.0, le=1.0)
    take_profit_percent: float | None = Field(default=None, gt=0.0)
    max_drawdown_percent: float | None = Field(default=None, gt=0.0, le=1.0)

    @property
    def enabled(self) -> bool:
        return self.stop_loss_percent is not None or self.take_profit_percent is not None


class PortfolioConfig(_Model):
    initial_cash: float = Field(gt=0.0)
    commission_rate: float = Field(default=0.0, ge=0.0)
    slippage_rate: float | None = Field(default=None, ge=0.0)
    max_position_size: float | None = Field(default=None, gt=0.0, le=1.0)
    risk_management: RiskManagementConfig | None = None


class BacktestExecutionConfig(_Model):
    portfolio: PortfolioConfig
    start_date: datetime
    end_date: datetime
    benchmark: str | None = None
    include_costs: bool = True

    @field_validator("start_date", "end_date", mode="after")
    @classmethod
    def dates_are_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def start_not_after_end(self) -> BacktestExecutionConfig:
        if self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date.isoformat()} is after end_date {self.end_date.isoformat()}")
        return self


# ---------------------------------------------------------------------------
# Process settings
# ---------------------------------------------------------------------------


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def level_is_known(cls, v: str) -> str:
        lvl = v.strip().upper()
        if lvl not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return lvl


class Settings(BaseSettings):
    """Root settings. Single source of truth for process-wide knobs."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    max_history: int = Field(default=1000, ge=1)
    default_priority: int = 999

    model_config = {"env_prefix": "TRADESIM_", "env_nested_delimiter": "__"}

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        p = Path(path)
        raw = _read_yaml_mapping(p)
        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings file {p}: {e}") from e
