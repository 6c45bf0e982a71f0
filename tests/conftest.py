from __future__ import annotations

import sys
from pathlib import Path

import pytest

# pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tradesim.core.config import PortfolioConfig  # noqa: E402


@pytest.fixture()
def portfolio_config() -> PortfolioConfig:
    """Default ledger: 10k cash, 0.1% commission, no limits."""

    return PortfolioConfig(initial_cash=10_000.0, commission_rate=0.001)


@pytest.fixture()
def strategies_dir() -> Path:
    return REPO_ROOT / "strategies"
