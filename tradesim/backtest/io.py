"""tradesim.backtest.io

Lightweight IO helpers for backtesting.

CSV schema:
- required: timestamp, close
- optional: open, high, low, volume (open/high/low default to close, volume to 0)

Timestamps are ISO-8601 or epoch seconds; naive values are read as UTC.
Rows are returned sorted ascending by timestamp.
"""

from __future__ import annotations

import csv
from datetime import UTC, datetime
from pathlib import Path

from tradesim.core.time import ensure_utc, parse_dt
from tradesim.core.types import Bar

REQUIRED_COLUMNS = ("timestamp", "close")


def _parse_timestamp(raw: str) -> datetime:
    try:
        return datetime.fromtimestamp(float(raw), tz=UTC)
    except ValueError:
        return parse_dt(raw)


def load_bars_csv(path: str | Path) -> list[Bar]:
    p = Path(path)
    rows: list[dict[str, str]] = []
    with p.open("r", encoding="utf-8") as f:
        r = csv.DictReader(f)
        for row in r:
            rows.append(
                {k.strip().lower(): (v.strip() if isinstance(v, str) else "") for k, v in row.items() if k is not None}
            )

    if not rows:
        return []

    for name in REQUIRED_COLUMNS:
        if name not in rows[0]:
            raise ValueError(f"CSV missing required column: {name}")

    def num(row: dict[str, str], name: str, default: float) -> float:
        v = row.get(name, "")
        return default if v == "" else float(v)

    bars: list[Bar] = []
    for i, row in enumerate(rows, start=2):
        try:
            close = float(row["close"])
            bars.append(
                Bar(
                    timestamp=_parse_timestamp(row["timestamp"]),
                    open=num(row, "open", close),
                    high=num(row, "high", close),
                    low=num(row, "low", close),
                    close=close,
                    volume=num(row, "volume", 0.0),
                )
            )
        except ValueError as e:
            raise ValueError(f"{p}:{i}: {e}") from e

    bars.sort(key=lambda b: b.timestamp)
    return bars


class CsvBarProvider:
    """Reads `<root>/<symbol>_<timeframe>.csv`."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, symbol: str, timeframe: str) -> Path:
        return self.root / f"{symbol}_{timeframe}.csv"

    def get_bars(self, symbol: str, timeframe: str, start: datetime, end: datetime) -> list[Bar]:
        lo = ensure_utc(start)
        hi = ensure_utc(end)
        return [b for b in load_bars_csv(self.path_for(symbol, timeframe)) if lo <= b.timestamp <= hi]
