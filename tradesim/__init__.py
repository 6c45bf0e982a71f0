"""tradesim: replay historical bars through a strategy and account for every trade.

Pipeline:
- indicators consume one bar at a time
- compiled conditions turn indicator values into signals
- the portfolio ledger executes signals and enforces risk rules
- the backtest engine records the equity curve and derives metrics
"""

from __future__ import annotations

import logging

__all__ = ["__version__"]

__version__ = "1.0.0"

# Library convention: silent unless the caller configures logging.
logging.getLogger("tradesim").addHandler(logging.NullHandler())
