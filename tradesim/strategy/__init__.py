"""tradesim.strategy

Strategy compilation and per-bar signal evaluation.
"""

from tradesim.strategy.compiler import (
    CompiledCondition,
    CompiledStrategy,
    StrategyRisk,
    ValidationResult,
    compile_strategy,
    process_parameter_templating,
    validate_strategy,
)
from tradesim.strategy.engine import StrategyEngine, StrategyExecutionStats
from tradesim.strategy.expression import Expression, ExpressionError, parse

__all__ = [
    "CompiledCondition",
    "CompiledStrategy",
    "Expression",
    "ExpressionError",
    "StrategyEngine",
    "StrategyExecutionStats",
    "StrategyRisk",
    "ValidationResult",
    "compile_strategy",
    "parse",
    "process_parameter_templating",
    "validate_strategy",
]
