"""tradesim.portfolio.risk

Risk rules applied to open positions and to the run as a whole.

- stop loss / take profit: per position, against the weighted-average entry
- drawdown halt: once equity falls `max_drawdown_percent` below its peak, no new
  positions for the rest of the run. Auto-engage, never auto-release.
"""

from __future__ import annotations

from dataclasses import dataclass

from tradesim.core.config import RiskManagementConfig
from tradesim.core.types import Position

STOP_LOSS = "Stop Loss"
TAKE_PROFIT = "Take Profit"
END_OF_BACKTEST = "End of backtest"


def price_change(position: Position, price: float) -> float:
    return (float(price) - position.average_price) / position.average_price


def evaluate_exit(position: Position, price: float, rules: RiskManagementConfig) -> str | None:
    """Stop loss is checked before take profit."""

    change = price_change(position, price)
    if rules.stop_loss_percent and change <= -rules.stop_loss_percent:
        return STOP_LOSS
    if rules.take_profit_percent and change >= rules.take_profit_percent:
        return TAKE_PROFIT
    return None


def drawdown(peak: float, value: float) -> float:
    if peak <= 0:
        return 0.0
    return (peak - value) / peak


@dataclass
class DrawdownHalt:
    limit: float | None = None
    engaged: bool = False

    def update(self, current_drawdown: float) -> bool:
        """Returns True only on the bar that engages the halt."""

        if self.engaged or self.limit is None:
            return False
        if current_drawdown >= self.limit:
            self.engaged = True
            return True
        return False

    @property
    def allows_new_positions(self) -> bool:
        return not self.engaged
