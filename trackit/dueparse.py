"""Parse relaxed, human-entered due times."""
from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from .errors import InvalidInputError

DUE_FORMAT_HINT = (
    "Examples: '2025-10-12 18:00', '2025-10-12', '14:30', 'today 19:00', "
    "'tomorrow 09:00', '+2h', 'in 90m', '+3d', 'now'."
)

_RELATIVE = re.compile(
    r"^(?:\+|in\s+)(?P<amount>\d+)\s*(?P<unit>m|min|mins|minute|minutes|h|hr|hrs|hour|hours|d|day|days)$"
)
_DAY_AND_TIME = re.compile(r"^(?P<day>today|tomorrow)\s+(?P<hm>\d{1,2}:\d{2})$")
_TIME_ONLY = re.compile(r"^\d{1,2}:\d{2}$")
_DATE_AND_TIME = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})\s+(?P<hm>\d{1,2}:\d{2})$")
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_UNIT_SECONDS = {
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
}


def _parse_clock(value: str) -> Optional[time]:
    hours_text, minutes_text = value.split(":", 1)
    hours, minutes = int(hours_text), int(minutes_text)
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def parse_due(text: Optional[str], *, now: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Interpret ``text`` relative to ``now`` in ``tz`` and return an aware UTC datetime.

    Raises :class:`~trackit.errors.InvalidInputError` when the input is not
    understood. See :data:`DUE_FORMAT_HINT` for the accepted forms.
    """

    value = (text or "").strip().lower()
    if not value:
        raise InvalidInputError("Due time is required")

    local_now = now.astimezone(tz)
    today = local_now.date()

    if value == "now":
        return local_now.astimezone(timezone.utc)

    match = _RELATIVE.match(value)
    if match:
        delta = timedelta(seconds=int(match.group("amount")) * _UNIT_SECONDS[match.group("unit")])
        return (local_now + delta).astimezone(timezone.utc)

    match = _DAY_AND_TIME.match(value)
    if match:
        clock = _parse_clock(match.group("hm"))
        if clock is not None:
            day = today if match.group("day") == "today" else today + timedelta(days=1)
            return datetime.combine(day, clock, tzinfo=tz).astimezone(timezone.utc)

    if _TIME_ONLY.match(value):
        clock = _parse_clock(value)
        if clock is not None:
            candidate = datetime.combine(today, clock, tzinfo=tz)
            if candidate <= local_now:
                candidate = datetime.combine(today + timedelta(days=1), clock, tzinfo=tz)
            return candidate.astimezone(timezone.utc)

    match = _DATE_AND_TIME.match(value)
    if match:
        clock = _parse_clock(match.group("hm"))
        if clock is not None:
            try:
                day = datetime.strptime(match.group("date"), "%Y-%m-%d").date()
            except ValueError:
                day = None
            if day is not None:
                return datetime.combine(day, clock, tzinfo=tz).astimezone(timezone.utc)

    if _DATE_ONLY.match(value):
        try:
            day = datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            day = None
        if day is not None:
            return datetime.combine(day, time(23, 59), tzinfo=tz).astimezone(timezone.utc)

    try:
        parsed = datetime.fromisoformat(value.upper().replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidInputError(f"Could not understand due time '{text}'. {DUE_FORMAT_HINT}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(timezone.utc)


__all__ = ["DUE_FORMAT_HINT", "parse_due"]
