from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from trackit.dueparse import parse_due
from trackit.errors import InvalidInputError

NOW = datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc)


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("now", NOW),
        ("+2h", _utc(2025, 10, 10, 14, 0)),
        ("in 90m", _utc(2025, 10, 10, 13, 30)),
        ("+3d", _utc(2025, 10, 13, 12, 0)),
        ("IN 2 Hours", _utc(2025, 10, 10, 14, 0)),
        ("today 19:00", _utc(2025, 10, 10, 19, 0)),
        ("tomorrow 09:00", _utc(2025, 10, 11, 9, 0)),
        ("13:00", _utc(2025, 10, 10, 13, 0)),
        ("10:00", _utc(2025, 10, 11, 10, 0)),
        ("2025-10-12 18:00", _utc(2025, 10, 12, 18, 0)),
        ("2025-10-12", _utc(2025, 10, 12, 23, 59)),
        ("2025-10-12T18:00:00Z", _utc(2025, 10, 12, 18, 0)),
        ("2025-10-12T18:00:00+02:00", _utc(2025, 10, 12, 16, 0)),
    ],
)
def test_parse_due_formats(text: str, expected: datetime) -> None:
    assert parse_due(text, now=NOW) == expected


def test_parse_due_uses_local_timezone() -> None:
    berlin = ZoneInfo("Europe/Berlin")

    assert parse_due("2025-10-12 18:00", now=NOW, tz=berlin) == _utc(2025, 10, 12, 16, 0)
    # 12:00 UTC is 14:00 in Berlin, so 13:00 has already passed today.
    assert parse_due("13:00", now=NOW, tz=berlin) == _utc(2025, 10, 11, 11, 0)


def test_parse_due_always_returns_utc() -> None:
    parsed = parse_due("tomorrow 09:00", now=NOW, tz=ZoneInfo("America/New_York"))
    assert parsed.tzinfo == timezone.utc


@pytest.mark.parametrize("text", ["", "   ", None, "soonish", "25:00", "2025-13-40", "tomorrow 24:30"])
def test_parse_due_rejects_unknown_input(text) -> None:
    with pytest.raises(InvalidInputError):
        parse_due(text, now=NOW)
