"""tradesim.strategy.compiler

StrategyConfig -> CompiledStrategy.

Compilation is all-or-nothing:
1) resolve `{{parameters.x}}` / `{{x}}` placeholders against the parameter map
2) validate structure, collecting every violation
3) instantiate indicators and parse every condition once

A compiled strategy owns its indicator state and a bounded bar history. It is
created once per backtest run and is not shared between runs.
"""

from __future__ import annotations

import re
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from tradesim.core.config import StrategyConfig
from tradesim.core.exceptions import StrategyValidationError, Violation
from tradesim.core.time import utc_now
from tradesim.core.types import Bar, SignalType
from tradesim.indicators.base import DEFAULT_MAX_HISTORY, Indicator
from tradesim.indicators.registry import IndicatorRegistry
from tradesim.strategy.expression import BAR_FIELDS, Expression, ExpressionError, parse

DEFAULT_PRIORITY = 999
COMPILER_VERSION = "1.0.0"

_PLACEHOLDER = re.compile(r"\{\{\s*(?:parameters\.)?([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[Violation]
    warnings: list[Violation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StrategyRisk:
    stop_loss: float | None = None
    take_profit: float | None = None
    max_position_size: float | None = None
    max_drawdown: float | None = None


@dataclass(frozen=True, slots=True)
class CompiledCondition:
    id: str
    side: SignalType
    reason: str
    priority: int
    expression: Expression
    required_indicators: tuple[str, ...]

    def evaluate(self, ctx: CompiledStrategy) -> bool:
        return self.expression.is_true(ctx)


@dataclass
class CompiledStrategy:
    id: str
    config: StrategyConfig
    symbol: str
    position_size: float
    indicators: dict[str, Indicator]
    buy_conditions: tuple[CompiledCondition, ...]
    sell_conditions: tuple[CompiledCondition, ...]
    risk: StrategyRisk | None
    bar_history: deque[Bar]
    compiled_at: datetime = field(default_factory=utc_now)
    compiler_version: str = COMPILER_VERSION

    @property
    def name(self) -> str:
        return self.config.name

    def lookup(self, name: str, lag: int) -> float | None:
        """Value of an indicator or bar field `lag` bars back. None if undefined."""

        if name in self.indicators:
            return self.indicators[name].value(lag)
        if name in BAR_FIELDS:
            if lag < 0 or lag >= len(self.bar_history):
                return None
            return self.bar_history[-1 - lag].field(name)
        raise KeyError(f"Unknown reference: {name}")

    def indicator_values(self) -> dict[str, float | None]:
        return {name: ind.value() for name, ind in self.indicators.items()}

    def reset(self) -> None:
        for ind in self.indicators.values():
            ind.reset()
        self.bar_history.clear()


# ---------------------------------------------------------------------------
# Templating
# ---------------------------------------------------------------------------


def render_template(value: Any, params: dict[str, Any], missing: set[str]) -> Any:
    """Substitute placeholders in strings nested anywhere inside `value`.

    A string that is exactly one placeholder takes the parameter's own type, so
    `period: "{{fast_period}}"` becomes an int. Unknown names are collected in
    `missing` and left untouched.
    """

    if isinstance(value, str):
        whole = _PLACEHOLDER.fullmatch(value.strip())
        if whole is not None:
            key = whole.group(1)
            if key in params:
                return params[key]
            missing.add(key)
            return value

        def sub(m: re.Match[str]) -> str:
            key = m.group(1)
            if key in params:
                return str(params[key])
            missing.add(key)
            return m.group(0)

        return _PLACEHOLDER.sub(sub, value)
    if isinstance(value, dict):
        return {k: render_template(v, params, missing) for k, v in value.items()}
    if isinstance(value, list):
        return [render_template(v, params, missing) for v in value]
    return value


def process_parameter_templating(config: StrategyConfig) -> tuple[StrategyConfig, set[str]]:
    raw = config.model_dump()
    missing: set[str] = set()
    params = raw.get("parameters") or {}
    for key in ("indicators", "signals", "risk_management"):
        raw[key] = render_template(raw.get(key), params, missing)
    return StrategyConfig.model_validate(raw), missing


# ---------------------------------------------------------------------------
# Validation + compilation
# ---------------------------------------------------------------------------


def _position_size(params: dict[str, Any]) -> Any:
    return params.get("position_size", params.get("positionSize"))


def _as_fraction(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class _Analysis:
    errors: list[Violation] = field(default_factory=list)
    warnings: list[Violation] = field(default_factory=list)
    config: StrategyConfig | None = None
    indicators: dict[str, Indicator] = field(default_factory=dict)
    buy: list[CompiledCondition] = field(default_factory=list)
    sell: list[CompiledCondition] = field(default_factory=list)
    risk: StrategyRisk | None = None

    def error(self, code: str, fld: str, message: str) -> None:
        self.errors.append(Violation(code=code, field=fld, message=message))

    def warn(self, code: str, fld: str, message: str) -> None:
        self.warnings.append(Violation(code=code, field=fld, message=message))


def _analyse(
    config: StrategyConfig,
    registry: IndicatorRegistry,
    *,
    max_history: int,
    default_priority: int,
) -> _Analysis:
    out = _Analysis()

    if not config.name or not config.name.strip():
        out.error("MISSING_NAME", "name", "Strategy name is required")

    params = config.parameters or {}
    if not params:
        out.error("MISSING_PARAMETERS", "parameters", "Strategy parameters are required")
    else:
        if not params.get("symbol"):
            out.error("MISSING_SYMBOL", "parameters.symbol", "Trading symbol is required")
        size = _as_fraction(_position_size(params))
        if size is None or not (0.0 < size <= 1.0):
            out.error("INVALID_POSITION_SIZE", "parameters.position_size", "Position size must be between 0 and 1")

    try:
        processed, missing = process_parameter_templating(config)
    except ValidationError as e:
        out.error("INVALID_TEMPLATE_VALUE", "parameters", f"Templated values do not fit the strategy schema: {e}")
        processed, missing = config, set()
    out.config = processed
    for key in sorted(missing):
        out.error("UNRESOLVED_PLACEHOLDER", f"parameters.{key}", f"Template references unknown parameter: {key}")

    # Indicators
    if not processed.indicators:
        out.error("NO_INDICATORS", "indicators", "At least one indicator is required")
    seen: set[str] = set()
    for i, spec in enumerate(processed.indicators):
        fld = f"indicators[{i}]"
        if not spec.name:
            out.error("MISSING_INDICATOR_NAME", fld, "Indicator name is required")
            continue
        if spec.name in seen:
            out.error("DUPLICATE_INDICATOR", fld, f"Duplicate indicator name: {spec.name}")
            continue
        seen.add(spec.name)
        if spec.name in BAR_FIELDS:
            out.error("RESERVED_INDICATOR_NAME", fld, f"Indicator name shadows a bar field: {spec.name}")
            continue
        if spec.type not in registry:
            out.error("UNSUPPORTED_INDICATOR", fld, f"Unsupported indicator type: {spec.type}")
            continue
        try:
            out.indicators[spec.name] = registry.create(
                spec.type,
                name=spec.name,
                period=spec.resolved_period,
                source=spec.resolved_source,
                max_history=max_history,
            )
        except (KeyError, ValueError) as e:
            out.error("INVALID_INDICATOR", fld, f"Indicator {spec.name}: {e}")

    # Signals
    if not processed.signals.buy and not processed.signals.sell:
        out.error("MISSING_SIGNALS", "signals", "At least one buy or sell signal is required")

    known = seen | BAR_FIELDS
    for side, specs, bucket in (
        (SignalType.BUY, processed.signals.buy, out.buy),
        (SignalType.SELL, processed.signals.sell, out.sell),
    ):
        for i, sig in enumerate(specs):
            fld = f"signals.{side.value.lower()}[{i}]"
            try:
                expr = parse(sig.condition)
            except ExpressionError as e:
                out.error("INVALID_CONDITION", fld, f"Invalid condition: {e}")
                continue
            unknown = sorted(expr.references() - known)
            if unknown:
                out.error("UNKNOWN_REFERENCE", fld, f"Condition references unknown names: {', '.join(unknown)}")
                continue
            if expr.max_lag() >= max_history:
                out.error("LAG_TOO_DEEP", fld, f"Lag {expr.max_lag()} exceeds history of {max_history} bars")
                continue
            bucket.append(
                CompiledCondition(
                    id=sig.id or f"{side.value.lower()}_{i}",
                    side=side,
                    reason=sig.description or sig.condition,
                    priority=sig.priority if sig.priority is not None else default_priority,
                    expression=expr,
                    required_indicators=tuple(sorted(expr.indicator_references())),
                )
            )

    used = {name for c in (*out.buy, *out.sell) for name in c.required_indicators}
    for name in sorted(set(out.indicators) - used):
        out.warn("UNUSED_INDICATOR", "indicators", f"Indicator is never referenced: {name}")

    out.risk = _resolve_risk(processed, out)
    return out


def _resolve_risk(config: StrategyConfig, out: _Analysis) -> StrategyRisk | None:
    block = config.risk_management
    if block is None:
        return None

    values: dict[str, float | None] = {}
    for key in ("stop_loss", "take_profit", "max_position_size", "max_drawdown"):
        raw = getattr(block, key)
        if raw is None:
            values[key] = None
            continue
        v = _as_fraction(raw)
        upper_bounded = key != "take_profit"
        if v is None or v <= 0.0 or (upper_bounded and v > 1.0):
            bound = "> 0" if not upper_bounded else "in (0, 1]"
            out.error("INVALID_RISK_VALUE", f"risk_management.{key}", f"risk_management.{key} must be {bound}, got {raw!r}")
            values[key] = None
            continue
        values[key] = v
    return StrategyRisk(**values)


def validate_strategy(
    config: StrategyConfig,
    registry: IndicatorRegistry | None = None,
    *,
    max_history: int = DEFAULT_MAX_HISTORY,
    default_priority: int = DEFAULT_PRIORITY,
) -> ValidationResult:
    a = _analyse(config, registry or IndicatorRegistry(), max_history=max_history, default_priority=default_priority)
    return ValidationResult(is_valid=not a.errors, errors=a.errors, warnings=a.warnings)


def _strategy_id(name: str) -> str:
    slug = re.sub(r"\s+", "_", name.strip()).lower()
    return f"{slug}_{uuid.uuid4().hex[:12]}"


def compile_strategy(
    config: StrategyConfig,
    registry: IndicatorRegistry | None = None,
    *,
    max_history: int = DEFAULT_MAX_HISTORY,
    default_priority: int = DEFAULT_PRIORITY,
) -> CompiledStrategy:
    """Validate and compile.

    Raises:
        StrategyValidationError: listing every violation found.
    """

    a = _analyse(config, registry or IndicatorRegistry(), max_history=max_history, default_priority=default_priority)
    if a.errors:
        raise StrategyValidationError(a.errors)

    assert a.config is not None
    params = a.config.parameters
    return CompiledStrategy(
        id=_strategy_id(a.config.name),
        config=a.config,
        symbol=str(params["symbol"]),
        position_size=float(_position_size(params)),
        indicators=a.indicators,
        buy_conditions=tuple(a.buy),
        sell_conditions=tuple(a.sell),
        risk=a.risk,
        bar_history=deque(maxlen=max_history),
    )
