"""Domain models for users, work orders and the notification log."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Stage(str, Enum):
    """Lifecycle stage of a work order. ``CLOSED`` is terminal."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    AWAITING_PARTS = "awaiting_parts"
    CLOSED = "closed"


class CloseReason(str, Enum):
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the user directory.

    ``id`` is ``None`` until storage assigns one on insert.
    """

    username: str
    email: Optional[str]
    password_hash: bytes
    password_salt: bytes
    created_at: datetime
    id: Optional[int] = None


@dataclass(frozen=True)
class WorkOrder:
    """A trackable task owned by the user that created it."""

    creator_user_id: int
    summary: str
    details: Optional[str]
    due_at: datetime
    priority: Priority
    stage: Stage
    closed: bool
    closed_at: Optional[datetime]
    closed_reason: Optional[CloseReason]
    created_at: datetime
    updated_at: datetime
    id: Optional[int] = None

    def with_changes(self, **fields: Any) -> "WorkOrder":
        """Return a copy of this work order with ``fields`` replaced."""

        return replace(self, **fields)


@dataclass(frozen=True)
class NotificationLogEntry:
    work_order_id: int
    window_tag: str
    sent_at: datetime


@dataclass(frozen=True)
class LoginResult:
    """Outcome of :meth:`trackit.users.UserRegistry.login`."""

    success: bool
    user: Optional[User] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, user: User) -> "LoginResult":
        return cls(success=True, user=user, error=None)

    @classmethod
    def fail(cls, error: str) -> "LoginResult":
        return cls(success=False, user=None, error=error)


__all__ = [
    "Priority",
    "Stage",
    "CloseReason",
    "User",
    "WorkOrder",
    "NotificationLogEntry",
    "LoginResult",
]
