"""In-memory storage backends and an outbox gateway.

Useful for tests and for embedding the services without a database. Each
operation holds a lock so check-and-insert and record updates stay atomic.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import AlreadyExistsError, NotFoundError, NotificationDeliveryError
from .models import NotificationLogEntry, User, WorkOrder


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self._users: Dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def find_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user
        return None

    def exists(self, username: str) -> bool:
        return self.find_by_username(username) is not None

    def insert(self, user: User) -> int:
        with self._lock:
            if any(existing.username == user.username for existing in self._users.values()):
                raise AlreadyExistsError("Username already exists")
            user_id = self._next_id
            self._next_id += 1
            self._users[user_id] = replace(user, id=user_id)
            return user_id


class InMemoryWorkOrderLedger:
    def __init__(self) -> None:
        self._orders: Dict[int, WorkOrder] = {}
        self._log: List[NotificationLogEntry] = []
        self._logged: Set[Tuple[int, str]] = set()
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, order: WorkOrder) -> int:
        with self._lock:
            order_id = self._next_id
            self._next_id += 1
            self._orders[order_id] = order.with_changes(id=order_id)
            return order_id

    def get(self, work_order_id: int) -> Optional[WorkOrder]:
        with self._lock:
            return self._orders.get(work_order_id)

    def list_open_by_creator(self, creator_user_id: int) -> List[WorkOrder]:
        with self._lock:
            matches = [
                order
                for order in self._orders.values()
                if order.creator_user_id == creator_user_id and not order.closed
            ]
        return _by_due_time(matches)

    def update(self, order: WorkOrder) -> None:
        with self._lock:
            if order.id is None or order.id not in self._orders:
                raise NotFoundError("Work order not found")
            self._orders[order.id] = order

    def list_due_soon_unnotified(
        self,
        user_id: int,
        now: datetime,
        until: datetime,
        window_tag: str,
    ) -> List[WorkOrder]:
        with self._lock:
            matches = [
                order
                for order in self._orders.values()
                if order.creator_user_id == user_id
                and not order.closed
                and now <= order.due_at <= until
                and (order.id, window_tag) not in self._logged
            ]
        return _by_due_time(matches)

    def append_notification_log(self, work_order_id: int, window_tag: str, sent_at: datetime) -> bool:
        key = (work_order_id, window_tag)
        with self._lock:
            if key in self._logged:
                return False
            self._logged.add(key)
            self._log.append(
                NotificationLogEntry(work_order_id=work_order_id, window_tag=window_tag, sent_at=sent_at)
            )
            return True

    def list_notification_log(self, work_order_id: int) -> List[NotificationLogEntry]:
        with self._lock:
            return [entry for entry in self._log if entry.work_order_id == work_order_id]


def _by_due_time(orders: Iterable[WorkOrder]) -> List[WorkOrder]:
    return sorted(orders, key=lambda order: (order.due_at, order.id or 0))


@dataclass(frozen=True)
class OutboxMessage:
    to: str
    subject: str
    html_body: str
    text_body: Optional[str]


class MemoryOutbox:
    """Notification gateway that keeps messages instead of sending them.

    ``fail_for`` makes delivery to the listed recipients fail, and
    ``fail_when_subject_contains`` fails any message whose subject contains
    one of the given fragments.
    """

    def __init__(
        self,
        *,
        fail_for: Iterable[str] = (),
        fail_when_subject_contains: Iterable[str] = (),
    ) -> None:
        self.messages: List[OutboxMessage] = []
        self.attempts = 0
        self._fail_for = {address.lower() for address in fail_for}
        self._fail_subjects = list(fail_when_subject_contains)
        self._lock = threading.Lock()

    def send_email(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        with self._lock:
            self.attempts += 1
            if to.lower() in self._fail_for or any(part in subject for part in self._fail_subjects):
                raise NotificationDeliveryError(f"Delivery to {to} failed")
            self.messages.append(OutboxMessage(to=to, subject=subject, html_body=html_body, text_body=text_body))


__all__ = [
    "InMemoryUserDirectory",
    "InMemoryWorkOrderLedger",
    "MemoryOutbox",
    "OutboxMessage",
]
