"""tradesim.portfolio

Simulated cash, positions and trade history.
"""

from tradesim.portfolio.ledger import Portfolio
from tradesim.portfolio.risk import END_OF_BACKTEST, STOP_LOSS, TAKE_PROFIT, DrawdownHalt, drawdown, evaluate_exit

__all__ = [
    "DrawdownHalt",
    "END_OF_BACKTEST",
    "Portfolio",
    "STOP_LOSS",
    "TAKE_PROFIT",
    "drawdown",
    "evaluate_exit",
]
