"""Interfaces between the Trackit services and their collaborators.

The services only depend on these protocols. ``trackit.database`` and
``trackit.memory`` provide the concrete storage backends and
``trackit.notifications`` the email gateway.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from .models import NotificationLogEntry, User, WorkOrder


@runtime_checkable
class UserDirectory(Protocol):
    """Persistence for user identity records.

    Usernames passed in are already normalized by the caller.
    """

    def find_by_username(self, username: str) -> Optional[User]:
        """Return the user with ``username`` or ``None``."""

    def exists(self, username: str) -> bool:
        """Return ``True`` when ``username`` is taken."""

    def insert(self, user: User) -> int:
        """Persist ``user`` and return its id.

        Raises :class:`~trackit.errors.AlreadyExistsError` when the username
        is already taken. The check and the write are atomic.
        """


@runtime_checkable
class WorkOrderLedger(Protocol):
    """Persistence for work orders and the notification log."""

    def insert(self, order: WorkOrder) -> int:
        """Persist a new work order and return its id."""

    def get(self, work_order_id: int) -> Optional[WorkOrder]:
        """Return the work order or ``None``."""

    def list_open_by_creator(self, creator_user_id: int) -> List[WorkOrder]:
        """Return open work orders of a user ordered by ascending due time."""

    def update(self, order: WorkOrder) -> None:
        """Replace the stored record with ``order`` in a single write.

        Raises :class:`~trackit.errors.NotFoundError` for an unknown id.
        """

    def list_due_soon_unnotified(
        self,
        user_id: int,
        now: datetime,
        until: datetime,
        window_tag: str,
    ) -> List[WorkOrder]:
        """Return open work orders due in ``[now, until]`` not yet logged for ``window_tag``."""

    def append_notification_log(self, work_order_id: int, window_tag: str, sent_at: datetime) -> bool:
        """Record a dispatch. Returns ``False`` if the entry already existed."""

    def list_notification_log(self, work_order_id: int) -> List[NotificationLogEntry]:
        """Return the log entries recorded for a work order."""


@runtime_checkable
class NotificationGateway(Protocol):
    def send_email(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        """Deliver a message.

        Raises :class:`~trackit.errors.NotificationDeliveryError` on failure.
        """


__all__ = ["UserDirectory", "WorkOrderLedger", "NotificationGateway"]
