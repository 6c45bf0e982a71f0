from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from tradesim.core.time import ensure_utc, parse_dt, utc_now
from tradesim.core.types import Bar


def test_utc_now_is_aware() -> None:
    assert utc_now().tzinfo is UTC


def test_ensure_utc() -> None:
    assert ensure_utc(datetime(2024, 1, 1)) == datetime(2024, 1, 1, tzinfo=UTC)
    plus2 = timezone(timedelta(hours=2))
    assert ensure_utc(datetime(2024, 1, 1, 2, tzinfo=plus2)) == datetime(2024, 1, 1, tzinfo=UTC)


@pytest.mark.parametrize(
    "raw",
    ["2024-01-01T00:00:00Z", "2024-01-01T00:00:00+00:00", "2024-01-01T01:00:00+01:00", "2024-01-01", " 2024-01-01T00:00:00 "],
)
def test_parse_dt(raw: str) -> None:
    assert parse_dt(raw) == datetime(2024, 1, 1, tzinfo=UTC)


def test_parse_dt_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_dt("yesterday")


def test_bar_naive_timestamp_becomes_utc() -> None:
    b = Bar(timestamp=datetime(2024, 1, 1), open=1, high=2, low=0.5, close=1.5)
    assert b.timestamp.tzinfo is UTC
    assert b.field("high") == 2.0
    assert b.volume == 0.0


def test_bar_offset_timestamp_is_converted_to_utc() -> None:
    tokyo = timezone(timedelta(hours=9))
    b = Bar(timestamp=datetime(2024, 1, 2, 5, tzinfo=tokyo), open=1, high=1, low=1, close=1)
    assert b.timestamp.tzinfo is UTC
    assert b.timestamp == datetime(2024, 1, 1, 20, tzinfo=UTC)
    assert b.timestamp.date().day == 1
