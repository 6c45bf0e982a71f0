from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import pytest

from tradesim.core.config import PortfolioConfig, RiskManagementConfig
from tradesim.core.exceptions import InsufficientFundsError, NoOpenTradeFoundError, PositionNotFoundError
from tradesim.core.types import TradeSide, TradeStatus
from tradesim.portfolio import Portfolio

T1 = datetime(2024, 1, 1, tzinfo=UTC)
T2 = T1 + timedelta(hours=1)


def test_open_position_scenario(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    trade = pf.open_position("BTCUSD", 50_000, 0.1, T1)

    assert trade.commission == pytest.approx(5.0)
    assert trade.side == TradeSide.BUY
    assert trade.status == TradeStatus.OPEN
    assert pf.cash == pytest.approx(4_995.0)

    pos = pf.positions["BTCUSD"]
    assert pos.quantity == pytest.approx(0.1)
    assert pos.average_price == pytest.approx(50_000)
    assert pos.entry_time == T1


def test_close_position_scenario(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    opened = pf.open_position("BTCUSD", 50_000, 0.1, T1)
    closed = pf.close_position("BTCUSD", 52_000, T2, reason="take it")

    assert closed.id == opened.id
    assert closed.status == TradeStatus.CLOSED
    assert closed.pnl == pytest.approx(189.8)  # 200 - 5 - 5.2
    assert closed.commission == pytest.approx(10.2)
    assert closed.exit_price == 52_000
    assert closed.exit_time == T2
    assert closed.exit_reason == "take it"
    assert pf.cash == pytest.approx(10_189.8)
    assert pf.realized_pnl == pytest.approx(189.8)
    assert not pf.has_position("BTCUSD")
    assert pf.positions == {}


def test_cash_conservation_without_price_change(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    before = pf.cash
    pf.open_position("ETH", 2_000, 1.5, T1)
    closed = pf.close_position("ETH", 2_000, T2)
    fees = 2_000 * 1.5 * 0.001 * 2
    assert pf.cash == pytest.approx(before - fees)
    assert closed.pnl == pytest.approx(-fees)


def test_repeated_buys_net_into_one_trade(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    first = pf.open_position("BTCUSD", 100, 10, T1, reason="first", strategy_name="s")
    second = pf.open_position("BTCUSD", 200, 5, T2, reason="second")

    pos = pf.positions["BTCUSD"]
    assert pos.quantity == pytest.approx(15)
    assert pos.average_price == pytest.approx((10 * 100 + 5 * 200) / 15)
    assert pos.entry_time == T1
    assert pos.updated_at == T2

    assert second.id == first.id
    assert second.quantity == pytest.approx(15)
    assert second.entry_price == pytest.approx(pos.average_price)
    assert second.commission == pytest.approx(1.0 + 1.0)
    assert second.entry_reason == "first"
    assert second.strategy_name == "s"
    assert len(pf.trade_history()) == 1

    closed = pf.close_position("BTCUSD", 150, T2)
    # avg 133.33 -> +16.67 * 15 = 250 gross
    assert closed.pnl == pytest.approx((150 - 2000 / 15) * 15 - (2.0 + 150 * 15 * 0.001))


def test_can_buy_checks_cash_and_size_limit() -> None:
    pf = Portfolio(PortfolioConfig(initial_cash=1_000, commission_rate=0.01, max_position_size=0.5))
    assert pf.can_buy("X", 10, 49)
    assert pf.can_buy("X", 10, 50)  # exactly 50% of value
    assert not pf.can_buy("X", 10, 51)

    no_limit = Portfolio(PortfolioConfig(initial_cash=1_000, commission_rate=0.01))
    assert no_limit.can_buy("X", 10, 99)
    assert not no_limit.can_buy("X", 10, 100)  # 1000 + 10 commission > cash


def test_can_buy_tolerates_rounding_at_limit() -> None:
    pf = Portfolio(PortfolioConfig(initial_cash=10_000, max_position_size=0.1))
    qty = 10_000 * 0.1 / 3.0
    assert pf.can_buy("X", 3.0, qty)


def test_open_rejects_unaffordable(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    with pytest.raises(InsufficientFundsError):
        pf.open_position("BTCUSD", 50_000, 1, T1)
    assert pf.cash == 10_000
    assert pf.trade_history() == []


@pytest.mark.parametrize(("price", "qty"), [(0, 1), (-1, 1), (10, 0), (10, -2)])
def test_open_rejects_non_positive(portfolio_config: PortfolioConfig, price: float, qty: float) -> None:
    with pytest.raises(ValueError):
        Portfolio(portfolio_config).open_position("X", price, qty, T1)


def test_close_errors(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    with pytest.raises(PositionNotFoundError):
        pf.close_position("NOPE", 1, T1)

    pf.open_position("X", 10, 1, T1)
    with pytest.raises(ValueError):
        pf.close_position("X", 0, T2)

    pf._open.clear()  # simulate a corrupted ledger
    with pytest.raises(NoOpenTradeFoundError):
        pf.close_position("X", 10, T2)


def test_total_value_and_snapshot(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    pf.open_position("A", 100, 10, T1)  # 1000 + 1 fee
    pf.open_position("B", 50, 10, T1)  # 500 + 0.5 fee

    prices = {"A": 110.0, "B": 40.0}
    assert pf.total_value(prices) == pytest.approx(8_498.5 + 1_100 + 400)
    assert pf.total_value({"A": 110.0}) == pytest.approx(8_498.5 + 1_100)
    assert pf.unrealized_pnl(prices) == pytest.approx(100 - 100)

    snap = pf.snapshot(prices, T2)
    assert snap.timestamp == T2
    assert snap.cash == pytest.approx(8_498.5)
    assert {p.symbol for p in snap.positions} == {"A", "B"}
    assert snap.positions_value == pytest.approx(1_500)
    assert snap.realized_pnl == 0.0


def test_positions_returns_copy(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    pf.open_position("A", 100, 1, T1)
    pf.positions.clear()
    assert pf.has_position("A")


def test_stop_loss_scenario() -> None:
    cfg = PortfolioConfig(
        initial_cash=10_000,
        commission_rate=0.001,
        risk_management=RiskManagementConfig(stop_loss_percent=0.05),
    )
    pf = Portfolio(cfg)
    pf.open_position("BTCUSD", 50_000, 0.1, T1)

    closed = pf.apply_risk_management({"BTCUSD": 47_000}, T2)
    assert len(closed) == 1
    assert closed[0].exit_reason == "Stop Loss"
    assert closed[0].exit_price == 47_000
    assert not pf.has_position("BTCUSD")


def test_take_profit_and_untouched_positions() -> None:
    cfg = PortfolioConfig(
        initial_cash=10_000,
        risk_management=RiskManagementConfig(stop_loss_percent=0.05, take_profit_percent=0.1),
    )
    pf = Portfolio(cfg)
    pf.open_position("A", 100, 10, T1)
    pf.open_position("B", 100, 10, T1)
    pf.open_position("C", 100, 10, T1)

    closed = pf.apply_risk_management({"A": 111.0, "B": 101.0}, T2)  # C unpriced
    assert [(t.symbol, t.exit_reason) for t in closed] == [("A", "Take Profit")]
    assert pf.has_position("B")
    assert pf.has_position("C")


def test_risk_management_disabled_without_rules(portfolio_config: PortfolioConfig) -> None:
    pf = Portfolio(portfolio_config)
    pf.open_position("A", 100, 10, T1)
    assert pf.apply_risk_management({"A": 1.0}, T2) == []


def test_failed_risk_close_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    cfg = PortfolioConfig(initial_cash=10_000, risk_management=RiskManagementConfig(stop_loss_percent=0.05))
    pf = Portfolio(cfg)
    pf.open_position("A", 100, 10, T1)
    pf.open_position("B", 100, 10, T1)
    pf._open.pop("A")  # A can no longer be closed

    with caplog.at_level(logging.ERROR, logger="tradesim"):
        closed = pf.apply_risk_management({"A": 50.0, "B": 50.0}, T2)

    assert [t.symbol for t in closed] == ["B"]
    assert any(r.getMessage() == "risk_management_close_failed" for r in caplog.records)


def test_ledger_logs_events(caplog: pytest.LogCaptureFixture, portfolio_config: PortfolioConfig) -> None:
    with caplog.at_level(logging.INFO, logger="tradesim"):
        pf = Portfolio(portfolio_config)
        pf.open_position("A", 100, 1, T1)
        pf.close_position("A", 101, T2)
    events = [r.getMessage() for r in caplog.records]
    assert events == ["portfolio_initialized", "position_opened", "position_closed"]
