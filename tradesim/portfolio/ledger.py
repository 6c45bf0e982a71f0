"""tradesim.portfolio.ledger

Cash + position ledger for simulated execution.

Accounting rules:
- commission = order value * commission_rate, charged on entry and on exit
- repeated buys of one symbol net into one position at the weighted-average price
- trades are netted 1:1 with positions: a repeated buy extends the symbol's OPEN
  trade (same id) instead of opening a second one
- pnl on close = (exit - average entry) * quantity - (entry + exit commissions)

Trades and positions are immutable values; the ledger replaces them.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Mapping
from datetime import datetime

from tradesim.core.config import PortfolioConfig
from tradesim.core.exceptions import InsufficientFundsError, LedgerError, NoOpenTradeFoundError, PositionNotFoundError
from tradesim.core.log import get_logger
from tradesim.core.types import PortfolioSnapshot, Position, Trade, TradeSide, TradeStatus
from tradesim.portfolio.risk import evaluate_exit

# Absolute tolerance for affordability and size-limit checks.
_EPS = 1e-9


class Portfolio:
    def __init__(self, config: PortfolioConfig, *, logger: logging.Logger | None = None) -> None:
        self.config = config
        self.logger = logger or get_logger(__name__)
        self._cash = float(config.initial_cash)
        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._open: dict[str, int] = {}  # symbol -> index of its OPEN trade in _trades
        self._realized_pnl = 0.0

        self.logger.info(
            "portfolio_initialized",
            extra={
                "initial_cash": config.initial_cash,
                "commission_rate": config.commission_rate,
                "max_position_size": config.max_position_size,
            },
        )

    # -- read side --------------------------------------------------------

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def realized_pnl(self) -> float:
        return self._realized_pnl

    @property
    def positions(self) -> dict[str, Position]:
        return dict(self._positions)

    def trade_history(self) -> list[Trade]:
        return list(self._trades)

    def has_position(self, symbol: str) -> bool:
        return symbol in self._positions

    def commission(self, order_value: float) -> float:
        return float(order_value) * float(self.config.commission_rate)

    def total_value(self, prices: Mapping[str, float]) -> float:
        """Cash plus positions marked at `prices`. Positions without a price count as 0."""

        value = self._cash
        for symbol, pos in self._positions.items():
            px = prices.get(symbol)
            if px is not None:
                value += pos.market_value(px)
        return value

    def unrealized_pnl(self, prices: Mapping[str, float]) -> float:
        total = 0.0
        for symbol, pos in self._positions.items():
            px = prices.get(symbol)
            if px is not None:
                total += pos.unrealized_pnl(px)
        return total

    def snapshot(self, prices: Mapping[str, float], ts: datetime) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            timestamp=ts,
            cash=self._cash,
            positions=tuple(self._positions.values()),
            total_value=self.total_value(prices),
            unrealized_pnl=self.unrealized_pnl(prices),
            realized_pnl=self._realized_pnl,
        )

    # -- checks -----------------------------------------------------------

    def can_buy(self, symbol: str, price: float, quantity: float) -> bool:
        order_value = float(price) * float(quantity)
        if order_value + self.commission(order_value) > self._cash + _EPS:
            return False

        limit = self.config.max_position_size
        if limit is not None:
            # Only `symbol` is priced here; other holdings count as 0.
            current = self.total_value({symbol: float(price)})
            if current <= 0 or order_value / current > limit + _EPS:
                return False
        return True

    # -- mutations --------------------------------------------------------

    def open_position(
        self,
        symbol: str,
        price: float,
        quantity: float,
        ts: datetime,
        *,
        reason: str | None = None,
        strategy_name: str | None = None,
    ) -> Trade:
        """Buy `quantity` of `symbol` at `price`.

        Raises:
            ValueError: non-positive price or quantity.
            InsufficientFundsError: `can_buy` is False.
            NoOpenTradeFoundError: a position exists without its open trade.
        """

        price = float(price)
        quantity = float(quantity)
        if price <= 0 or quantity <= 0:
            raise ValueError(f"price and quantity must be > 0, got price={price} quantity={quantity}")
        if not self.can_buy(symbol, price, quantity):
            raise InsufficientFundsError(
                f"Cannot buy {quantity} {symbol} at {price}: insufficient funds or position limits"
            )

        existing = self._positions.get(symbol)
        idx = self._open.get(symbol)
        if existing is not None and idx is None:
            raise NoOpenTradeFoundError(f"No open trade found for symbol {symbol}")

        order_value = price * quantity
        fee = self.commission(order_value)
        self._cash -= order_value + fee

        if existing is None:
            self._positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                average_price=price,
                entry_time=ts,
                updated_at=ts,
            )
            trade = Trade(
                id=str(uuid.uuid4()),
                symbol=symbol,
                side=TradeSide.BUY,
                quantity=quantity,
                entry_price=price,
                entry_time=ts,
                commission=fee,
                entry_reason=reason,
                strategy_name=strategy_name,
            )
            self._open[symbol] = len(self._trades)
            self._trades.append(trade)
        else:
            assert idx is not None
            total_qty = existing.quantity + quantity
            avg = (existing.quantity * existing.average_price + order_value) / total_qty
            self._positions[symbol] = dataclasses.replace(
                existing, quantity=total_qty, average_price=avg, updated_at=ts
            )
            prior = self._trades[idx]
            trade = dataclasses.replace(
                prior,
                quantity=total_qty,
                entry_price=avg,
                commission=prior.commission + fee,
                entry_reason=prior.entry_reason or reason,
                strategy_name=prior.strategy_name or strategy_name,
            )
            self._trades[idx] = trade

        self.logger.info(
            "position_opened",
            extra={
                "symbol": symbol,
                "quantity": quantity,
                "price": price,
                "commission": fee,
                "trade_id": trade.id,
            },
        )
        return trade

    def close_position(self, symbol: str, price: float, ts: datetime, *, reason: str | None = None) -> Trade:
        """Sell the whole position in `symbol` at `price`.

        Raises:
            ValueError: non-positive price.
            PositionNotFoundError: nothing held in `symbol`.
            NoOpenTradeFoundError: the position has no open trade record.
        """

        price = float(price)
        if price <= 0:
            raise ValueError(f"price must be > 0, got {price}")
        pos = self._positions.get(symbol)
        if pos is None:
            raise PositionNotFoundError(f"No position found for symbol {symbol}")
        idx = self._open.get(symbol)
        if idx is None or self._trades[idx].status != TradeStatus.OPEN:
            raise NoOpenTradeFoundError(f"No open trade found for symbol {symbol}")

        opened = self._trades[idx]
        order_value = pos.quantity * price
        fee = self.commission(order_value)
        total_fees = opened.commission + fee
        pnl = (price - pos.average_price) * pos.quantity - total_fees

        closed = dataclasses.replace(
            opened,
            status=TradeStatus.CLOSED,
            exit_price=price,
            exit_time=ts,
            pnl=pnl,
            commission=total_fees,
            exit_reason=reason,
        )
        self._trades[idx] = closed
        del self._open[symbol]
        del self._positions[symbol]
        self._cash += order_value - fee
        self._realized_pnl += pnl

        self.logger.info(
            "position_closed",
            extra={
                "symbol": symbol,
                "quantity": pos.quantity,
                "entry_price": pos.average_price,
                "exit_price": price,
                "pnl": pnl,
                "trade_id": closed.id,
                "reason": reason,
            },
        )
        return closed

    def apply_risk_management(self, prices: Mapping[str, float], ts: datetime) -> list[Trade]:
        """Close positions that crossed their stop loss or take profit.

        A failed close is logged; remaining positions are still evaluated.
        """

        rules = self.config.risk_management
        if rules is None or not rules.enabled:
            return []

        closed: list[Trade] = []
        for symbol, pos in list(self._positions.items()):
            px = prices.get(symbol)
            if px is None:
                continue
            reason = evaluate_exit(pos, px, rules)
            if reason is None:
                continue
            try:
                trade = self.close_position(symbol, px, ts, reason=reason)
            except (LedgerError, ValueError):
                self.logger.exception("risk_management_close_failed", extra={"symbol": symbol, "reason": reason})
                continue
            closed.append(trade)
            self.logger.info(
                "risk_management_triggered",
                extra={
                    "symbol": symbol,
                    "reason": reason,
                    "entry_price": pos.average_price,
                    "exit_price": px,
                },
            )
        return closed
