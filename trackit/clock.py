"""Time sources injected into time-sensitive services."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""


class SystemClock:
    """Clock backed by the real wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock that returns a settable instant, for tests and replays."""

    def __init__(self, at: datetime) -> None:
        self._at = to_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = to_utc(at)

    def advance(self, delta: timedelta) -> datetime:
        self._at = self._at + delta
        return self._at


def to_utc(value: datetime) -> datetime:
    """Normalize ``value`` to UTC; naive values are treated as local time."""

    return value.astimezone(timezone.utc)


__all__ = ["Clock", "SystemClock", "FixedClock", "to_utc"]
