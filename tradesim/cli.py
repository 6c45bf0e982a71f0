"""tradesim.cli

Command line interface entry point for tradesim.

Design constraints:
- argparse-based.
- Lazy imports: do not import the simulation stack at parse time.
- Exit codes: 0 ok, 1 run or validation failure, 2 usage error.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from pathlib import Path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tradesim",
        description="Replay historical bars through a YAML strategy and report performance.",
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit.")
    parser.add_argument("--settings", type=Path, default=None, help="Settings YAML (logging, history depth).")

    sub = parser.add_subparsers(dest="command")

    p_bt = sub.add_parser("backtest", help="Run a strategy over a CSV of bars")
    p_bt.add_argument("strategy", type=Path, help="Strategy YAML file.")
    p_bt.add_argument("--data", type=Path, required=True, help="CSV with timestamp/open/high/low/close/volume.")
    p_bt.add_argument("--symbol", default=None, help="Override parameters.symbol.")
    p_bt.add_argument("--initial-cash", type=float, default=10_000.0)
    p_bt.add_argument("--commission", type=float, default=0.001, help="Commission rate per fill.")
    p_bt.add_argument("--slippage", type=float, default=None, help="Slippage rate per fill.")
    p_bt.add_argument("--max-position-size", type=float, default=None)
    p_bt.add_argument("--start", default=None, help="ISO-8601 start (default: first bar).")
    p_bt.add_argument("--end", default=None, help="ISO-8601 end (default: last bar).")
    p_bt.add_argument("--no-costs", action="store_true", help="Ignore commission and slippage.")
    p_bt.add_argument("--json", action="store_true", help="Print the full result as JSON.")

    p_val = sub.add_parser("validate", help="Validate a strategy YAML file")
    p_val.add_argument("strategy", type=Path)

    sub.add_parser("indicators", help="List available indicator types")

    return parser


def _print_version() -> None:
    from tradesim import __version__

    print(f"tradesim v{__version__}")


def _load_settings(args: argparse.Namespace):
    from tradesim.core.config import Settings
    from tradesim.core.log import configure_logging

    settings = Settings.from_yaml(args.settings) if args.settings else Settings()
    configure_logging(settings.logging)
    return settings


def _cmd_backtest(args: argparse.Namespace) -> int:
    from tradesim.backtest.engine import BacktestEngine
    from tradesim.backtest.io import load_bars_csv
    from tradesim.core.config import BacktestExecutionConfig, PortfolioConfig, StrategyConfig
    from tradesim.core.exceptions import ConfigError
    from tradesim.core.time import parse_dt
    from tradesim.strategy.engine import StrategyEngine

    settings = _load_settings(args)
    try:
        strategy = StrategyConfig.from_yaml(args.strategy)
        bars = load_bars_csv(args.data)
    except (ConfigError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.symbol:
        strategy = strategy.model_copy(update={"parameters": {**strategy.parameters, "symbol": args.symbol}})
    if not bars and (args.start is None or args.end is None):
        print("error: no bars in data file; pass --start and --end", file=sys.stderr)
        return 1

    try:
        config = BacktestExecutionConfig(
            portfolio=PortfolioConfig(
                initial_cash=args.initial_cash,
                commission_rate=args.commission,
                slippage_rate=args.slippage,
                max_position_size=args.max_position_size,
            ),
            start_date=parse_dt(args.start) if args.start else bars[0].timestamp,
            end_date=parse_dt(args.end) if args.end else bars[-1].timestamp,
            include_costs=not args.no_costs,
        )
        engine = BacktestEngine(StrategyEngine(settings=settings))
        result = engine.run_backtest(strategy, bars, config)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"error: invalid backtest configuration: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    s = result.summary
    print(f"{result.metadata.strategy_name}")
    print(f"- bars: {result.metadata.bars_processed} processed, {result.metadata.bars_failed} failed")
    print(f"- trades: {s.total_trades} ({s.winning_trades} won, {s.losing_trades} lost)")
    print(f"- total return: {s.total_return:.2%}")
    print(f"- annualized return: {s.annualized_return:.2%}")
    print(f"- sharpe ratio: {s.sharpe_ratio:.3f}")
    print(f"- max drawdown: {s.max_drawdown:.2%}")
    print(f"- win rate: {s.win_rate:.2%}")
    print(f"- profit factor: {s.profit_factor:.3f}")
    print(f"- final value: {result.final_portfolio.total_value:.2f}")
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    from tradesim.core.config import StrategyConfig
    from tradesim.core.exceptions import ConfigError
    from tradesim.strategy.engine import StrategyEngine

    settings = _load_settings(args)
    try:
        strategy = StrategyConfig.from_yaml(args.strategy)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    res = StrategyEngine(settings=settings).validate_strategy(strategy)
    for v in res.errors:
        print(f"error [{v.code}] {v.field}: {v.message}")
    for v in res.warnings:
        print(f"warning [{v.code}] {v.field}: {v.message}")
    if res.is_valid:
        print(f"ok: {strategy.name}")
        return 0
    return 1


def _cmd_indicators(args: argparse.Namespace) -> int:
    from tradesim.indicators.registry import IndicatorRegistry

    for name in IndicatorRegistry().available():
        print(name)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        _print_version()
        return 0

    if not args.command:
        parser.print_help()
        return 2

    dispatch: dict[str, Callable[[argparse.Namespace], int]] = {
        "backtest": _cmd_backtest,
        "validate": _cmd_validate,
        "indicators": _cmd_indicators,
    }

    fn = dispatch.get(str(args.command))
    if fn is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 2

    return int(fn(args))


if __name__ == "__main__":
    raise SystemExit(main())
