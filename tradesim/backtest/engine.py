"""tradesim.backtest.engine

Backtest entry point.

One run = one compiled strategy + one ledger + one ordered bar sequence:

    NOT_STARTED -> RUNNING -> COMPLETED | FAILED

Per bar inside [start_date, end_date]:
1) risk exits (stop loss / take profit) at the bar close
2) strategy signals, in priority order
3) one equity curve point

A bar that raises is recorded as a BarProcessingError and produces no point;
the run continues. Ledger errors only skip the signal that caused them.
Open positions are force-closed at the last processed bar, and that bar's
equity point is restated after the close.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from enum import StrEnum

from tradesim.backtest.hooks import BacktestHooks
from tradesim.backtest.metrics import compute_performance
from tradesim.core.config import BacktestExecutionConfig, PortfolioConfig, RiskManagementConfig, StrategyConfig
from tradesim.core.exceptions import BarProcessingError, LedgerError
from tradesim.core.log import get_logger
from tradesim.core.types import (
    BacktestMetadata,
    BacktestResult,
    Bar,
    EquityCurvePoint,
    PortfolioSnapshot,
    SignalType,
    Trade,
    TradeSignal,
)
from tradesim.portfolio.ledger import Portfolio
from tradesim.portfolio.risk import END_OF_BACKTEST, DrawdownHalt, drawdown
from tradesim.strategy.compiler import CompiledStrategy, StrategyRisk
from tradesim.strategy.engine import StrategyEngine

# Fraction of portfolio value per BUY when neither the signal nor the config sizes it.
DEFAULT_POSITION_FRACTION = 0.25


class BacktestStatus(StrEnum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def resolve_portfolio_config(config: BacktestExecutionConfig, risk: StrategyRisk | None) -> PortfolioConfig:
    """Effective ledger config for a run.

    - include_costs=False zeroes commission and slippage
    - unset max_position_size / risk rules fall back to the strategy's risk block
    """

    pc = config.portfolio
    update: dict[str, object] = {}
    if not config.include_costs:
        update["commission_rate"] = 0.0
        update["slippage_rate"] = None
    if risk is not None:
        if pc.max_position_size is None and risk.max_position_size is not None:
            update["max_position_size"] = risk.max_position_size
        has_rules = any(v is not None for v in (risk.stop_loss, risk.take_profit, risk.max_drawdown))
        if pc.risk_management is None and has_rules:
            update["risk_management"] = RiskManagementConfig(
                stop_loss_percent=risk.stop_loss,
                take_profit_percent=risk.take_profit,
                max_drawdown_percent=risk.max_drawdown,
            )
    return pc.model_copy(update=update) if update else pc


class BacktestRun:
    def __init__(
        self,
        strategy: CompiledStrategy,
        config: BacktestExecutionConfig,
        *,
        strategy_engine: StrategyEngine | None = None,
        logger: logging.Logger | None = None,
        hooks: BacktestHooks | None = None,
    ) -> None:
        self.strategy = strategy
        self.config = config
        self.strategy_engine = strategy_engine or StrategyEngine()
        self.logger = logger or get_logger(__name__)
        self.hooks = hooks or BacktestHooks()

        self.portfolio_config = resolve_portfolio_config(config, strategy.risk)
        self.portfolio: Portfolio | None = None
        self.status = BacktestStatus.NOT_STARTED
        self.equity_curve: list[EquityCurvePoint] = []
        self.errors: list[BarProcessingError] = []
        self.bars_processed = 0
        self.bars_failed = 0

        rules = self.portfolio_config.risk_management
        self._halt = DrawdownHalt(limit=rules.max_drawdown_percent if rules is not None else None)
        self._peak = float(self.portfolio_config.initial_cash)
        self._last_bar: Bar | None = None
        self._cancelled = False
        self._t0 = 0.0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def halted(self) -> bool:
        return self._halt.engaged

    def cancel(self) -> None:
        """Stop before the next bar. The run still finishes and returns a result."""

        self._cancelled = True
        self.logger.info("backtest_cancel_requested", extra={"strategy": self.strategy.name})

    # -- lifecycle --------------------------------------------------------

    def start(self) -> None:
        if self.status != BacktestStatus.NOT_STARTED:
            raise RuntimeError(f"Backtest run already {self.status.value}")
        self.status = BacktestStatus.RUNNING
        self._t0 = time.perf_counter()
        self.portfolio = Portfolio(self.portfolio_config, logger=self.logger)
        self.strategy.reset()  # indicator state never carries over between runs
        self.logger.info(
            "backtest_started",
            extra={
                "strategy": self.strategy.name,
                "symbol": self.strategy.symbol,
                "start_date": self.config.start_date.isoformat(),
                "end_date": self.config.end_date.isoformat(),
                "initial_cash": self.portfolio_config.initial_cash,
            },
        )
        self._notify("on_start")

    def step(self, bar: Bar) -> bool:
        """Process one bar. False if it was out of range or failed."""

        if self.status != BacktestStatus.RUNNING:
            raise RuntimeError(f"Backtest run is {self.status.value}, not RUNNING")
        if not (self.config.start_date <= bar.timestamp <= self.config.end_date):
            return False

        try:
            point = self._process(bar)
        except Exception as e:  # noqa: BLE001 - bar isolation boundary
            err = BarProcessingError(bar.timestamp, e)
            self.errors.append(err)
            self.bars_failed += 1
            self.logger.exception(
                "bar_processing_failed",
                extra={"strategy": self.strategy.name, "timestamp": bar.timestamp.isoformat()},
            )
            self._notify("on_error", err)
            return False

        self.bars_processed += 1
        self._last_bar = bar
        self.equity_curve.append(point)
        self._notify("on_bar", bar, point)
        return True

    def finish(self, data_points: int) -> BacktestResult:
        portfolio = self._require_portfolio()
        symbol = self.strategy.symbol
        last = self._last_bar

        if last is not None:
            held = list(portfolio.positions)
            for sym in held:
                trade = portfolio.close_position(
                    sym, self._fill_price(SignalType.SELL, last.close), last.timestamp, reason=END_OF_BACKTEST
                )
                self._notify("on_trade", trade)
            final = portfolio.snapshot({symbol: last.close}, last.timestamp)
            if held:
                # The last point must carry the exit costs of the forced close.
                self.equity_curve[-1] = self._equity_point(final)
        else:
            final = portfolio.snapshot({}, self.config.end_date)

        closed = [t for t in portfolio.trade_history() if t.is_closed]
        summary = compute_performance(closed, self.equity_curve, self.portfolio_config.initial_cash)
        elapsed_ms = int((time.perf_counter() - self._t0) * 1000)

        self.status = BacktestStatus.COMPLETED
        result = BacktestResult(
            summary=summary,
            trades=closed,
            equity_curve=list(self.equity_curve),
            final_portfolio=final,
            config=self.config,
            metadata=BacktestMetadata(
                strategy_name=self.strategy.name,
                execution_time_ms=elapsed_ms,
                data_points=data_points,
                start_date=self.config.start_date,
                end_date=self.config.end_date,
                bars_processed=self.bars_processed,
                bars_failed=self.bars_failed,
                status=self.status.value.lower(),
                cancelled=self._cancelled,
            ),
            errors=[str(e) for e in self.errors],
        )
        self.logger.info(
            "backtest_completed",
            extra={
                "strategy": self.strategy.name,
                "execution_time_ms": elapsed_ms,
                "bars_processed": self.bars_processed,
                "bars_failed": self.bars_failed,
                "total_return": summary.total_return,
                "sharpe_ratio": summary.sharpe_ratio,
                "max_drawdown": summary.max_drawdown,
                "total_trades": summary.total_trades,
                "cancelled": self._cancelled,
            },
        )
        self._notify("on_complete", result)
        return result

    def run(self, bars: Sequence[Bar]) -> BacktestResult:
        self.start()
        try:
            for bar in bars:
                if self._cancelled:
                    break
                self.step(bar)
            return self.finish(len(bars))
        except Exception:
            self.status = BacktestStatus.FAILED
            self.logger.exception("backtest_failed", extra={"strategy": self.strategy.name})
            raise

    # -- per bar ----------------------------------------------------------

    def _process(self, bar: Bar) -> EquityCurvePoint:
        portfolio = self._require_portfolio()
        prices = {self.strategy.symbol: bar.close}

        if self.portfolio_config.risk_management is not None:
            for trade in portfolio.apply_risk_management(prices, bar.timestamp):
                self._notify("on_trade", trade)

        for signal in self.strategy_engine.execute_strategy(self.strategy, bar):
            self._apply_signal(portfolio, signal)

        point = self._equity_point(portfolio.snapshot(prices, bar.timestamp))
        if self._halt.update(point.drawdown):
            self.logger.warning(
                "drawdown_halt_engaged",
                extra={
                    "strategy": self.strategy.name,
                    "timestamp": bar.timestamp.isoformat(),
                    "drawdown": point.drawdown,
                    "limit": self._halt.limit,
                },
            )
        return point

    def _equity_point(self, snap: PortfolioSnapshot) -> EquityCurvePoint:
        self._peak = max(self._peak, snap.total_value)
        return EquityCurvePoint(
            timestamp=snap.timestamp,
            total_value=snap.total_value,
            cash=snap.cash,
            positions_value=snap.positions_value,
            unrealized_pnl=snap.unrealized_pnl,
            realized_pnl=snap.realized_pnl,
            drawdown=drawdown(self._peak, snap.total_value),
        )

    def _apply_signal(self, portfolio: Portfolio, signal: TradeSignal) -> None:
        try:
            if signal.type == SignalType.BUY:
                trade = self._buy(portfolio, signal)
            else:
                trade = self._sell(portfolio, signal)
        except LedgerError:
            self.logger.exception(
                "signal_execution_failed",
                extra={
                    "strategy": signal.strategy_name,
                    "symbol": signal.symbol,
                    "signal_type": signal.type.value,
                    "condition_id": signal.condition_id,
                },
            )
            return
        if trade is not None:
            self._notify("on_trade", trade)

    def _buy(self, portfolio: Portfolio, signal: TradeSignal) -> Trade | None:
        if not self._halt.allows_new_positions:
            self.logger.debug("buy_suppressed_by_drawdown_halt", extra={"condition_id": signal.condition_id})
            return None

        limit = self.portfolio_config.max_position_size
        fraction = signal.size_pct if signal.size_pct is not None else (limit or DEFAULT_POSITION_FRACTION)
        if limit is not None:
            fraction = min(fraction, limit)

        price = self._fill_price(SignalType.BUY, signal.price)
        value = portfolio.total_value({signal.symbol: signal.price})
        quantity = value * fraction / price
        if quantity <= 0 or not portfolio.can_buy(signal.symbol, price, quantity):
            self.logger.debug(
                "buy_skipped",
                extra={"symbol": signal.symbol, "price": price, "quantity": quantity, "cash": portfolio.cash},
            )
            return None
        return portfolio.open_position(
            signal.symbol,
            price,
            quantity,
            signal.timestamp,
            reason=signal.reason,
            strategy_name=signal.strategy_name,
        )

    def _sell(self, portfolio: Portfolio, signal: TradeSignal) -> Trade | None:
        if not portfolio.has_position(signal.symbol):
            return None
        price = self._fill_price(SignalType.SELL, signal.price)
        return portfolio.close_position(signal.symbol, price, signal.timestamp, reason=signal.reason)

    def _fill_price(self, side: SignalType, price: float) -> float:
        slip = self.portfolio_config.slippage_rate or 0.0
        if side == SignalType.BUY:
            return price * (1.0 + slip)
        return price * (1.0 - slip)

    def _require_portfolio(self) -> Portfolio:
        if self.portfolio is None:
            raise RuntimeError("Backtest run has not been started")
        return self.portfolio

    def _notify(self, event: str, *args: object) -> None:
        try:
            getattr(self.hooks, event)(self, *args)
        except Exception:  # noqa: BLE001 - hook isolation boundary
            self.logger.exception("backtest_hook_failed", extra={"hook": event, "strategy": self.strategy.name})


class BacktestEngine:
    def __init__(
        self,
        strategy_engine: StrategyEngine | None = None,
        *,
        logger: logging.Logger | None = None,
        hooks: BacktestHooks | None = None,
    ) -> None:
        self.logger = logger or get_logger(__name__)
        self.strategy_engine = strategy_engine or StrategyEngine(logger=self.logger)
        self.hooks = hooks

    def create_run(
        self,
        strategy: StrategyConfig | CompiledStrategy,
        config: BacktestExecutionConfig,
    ) -> BacktestRun:
        """Compile if needed and bind a fresh run.

        Raises:
            StrategyValidationError: before anything runs, if `strategy` is invalid.
        """

        compiled = self.strategy_engine.load_strategy(strategy) if isinstance(strategy, StrategyConfig) else strategy
        return BacktestRun(
            compiled,
            config,
            strategy_engine=self.strategy_engine,
            logger=self.logger,
            hooks=self.hooks,
        )

    def run_backtest(
        self,
        strategy: StrategyConfig | CompiledStrategy,
        bars: Sequence[Bar],
        config: BacktestExecutionConfig,
    ) -> BacktestResult:
        return self.create_run(strategy, config).run(bars)


def run_backtest(
    strategy: StrategyConfig | CompiledStrategy,
    bars: Sequence[Bar],
    config: BacktestExecutionConfig,
    *,
    strategy_engine: StrategyEngine | None = None,
    logger: logging.Logger | None = None,
    hooks: BacktestHooks | None = None,
) -> BacktestResult:
    engine = BacktestEngine(strategy_engine, logger=logger, hooks=hooks)
    return engine.run_backtest(strategy, bars, config)
