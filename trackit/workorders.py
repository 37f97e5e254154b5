"""Work order lifecycle, priority inference and due-soon notifications."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from .clock import Clock, SystemClock, to_utc
from .errors import (
    AlreadyClosedError,
    InvalidInputError,
    InvalidTransitionError,
    NotConfiguredError,
    NotFoundError,
    NotificationDeliveryError,
    NotOwnerError,
)
from .models import CloseReason, Priority, Stage, WorkOrder
from .notifications import render_due_reminder
from .ports import NotificationGateway, WorkOrderLedger

logger = logging.getLogger("trackit.workorders")

HIGH_PRIORITY_HORIZON = timedelta(hours=24)
MEDIUM_PRIORITY_HORIZON = timedelta(hours=72)


def window_tag(window: timedelta) -> str:
    """Return the deduplication tag for a notification window, e.g. ``"24h"``."""

    seconds = int(window.total_seconds())
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


class WorkOrderManager:
    """Owns the work order lifecycle.

    All writes go through the injected :class:`WorkOrderLedger`; records are
    never mutated in place. The optional gateway is only needed for
    :meth:`send_due_notifications`.
    """

    def __init__(
        self,
        ledger: WorkOrderLedger,
        gateway: Optional[NotificationGateway] = None,
        *,
        clock: Optional[Clock] = None,
        display_timezone: tzinfo = timezone.utc,
    ) -> None:
        self._ledger = ledger
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._display_timezone = display_timezone

    @property
    def notifications_enabled(self) -> bool:
        return self._gateway is not None

    def suggest_priority(self, due_at: datetime) -> Priority:
        remaining = to_utc(due_at) - self._clock.now()
        if remaining < HIGH_PRIORITY_HORIZON:
            # Overdue work is also HIGH.
            return Priority.HIGH
        if remaining < MEDIUM_PRIORITY_HORIZON:
            return Priority.MEDIUM
        return Priority.LOW

    def add(
        self,
        creator_user_id: int,
        summary: Optional[str],
        details: Optional[str],
        due_at: datetime,
        priority: Optional[Priority] = None,
    ) -> int:
        """Create an open work order and return its id."""

        if not summary or not summary.strip():
            raise InvalidInputError("Summary is required")

        now = self._clock.now()
        due_utc = to_utc(due_at)
        order = WorkOrder(
            creator_user_id=creator_user_id,
            summary=summary.strip(),
            details=details.strip() if details and details.strip() else None,
            due_at=due_utc,
            priority=priority if priority is not None else self.suggest_priority(due_utc),
            stage=Stage.OPEN,
            closed=False,
            closed_at=None,
            closed_reason=None,
            created_at=now,
            updated_at=now,
        )
        work_order_id = self._ledger.insert(order)
        logger.info(
            "Created work order #%s for user #%s (due %s, %s priority)",
            work_order_id,
            creator_user_id,
            due_utc.isoformat(),
            order.priority.value,
        )
        return work_order_id

    def get(self, work_order_id: int, actor_user_id: int) -> WorkOrder:
        return self._load_owned(work_order_id, actor_user_id)

    def list_open(self, creator_user_id: int) -> List[WorkOrder]:
        return self._ledger.list_open_by_creator(creator_user_id)

    def change_stage(self, work_order_id: int, actor_user_id: int, new_stage: Stage) -> WorkOrder:
        existing = self._load_owned(work_order_id, actor_user_id)
        if existing.closed and new_stage is not Stage.CLOSED:
            raise InvalidTransitionError("Closed work orders cannot move stages")

        now = self._clock.now()
        entering_closed = new_stage is Stage.CLOSED and existing.closed_at is None
        updated = existing.with_changes(
            stage=new_stage,
            closed=new_stage is Stage.CLOSED or existing.closed,
            closed_at=now if entering_closed else existing.closed_at,
            updated_at=now,
        )
        self._ledger.update(updated)
        logger.info(
            "Work order #%s moved from %s to %s",
            work_order_id,
            existing.stage.value,
            new_stage.value,
        )
        return updated

    def close(self, work_order_id: int, actor_user_id: int, reason: CloseReason) -> WorkOrder:
        existing = self._load_owned(work_order_id, actor_user_id)
        if existing.closed:
            raise AlreadyClosedError("Work order is already closed")

        now = self._clock.now()
        updated = existing.with_changes(
            stage=Stage.CLOSED,
            closed=True,
            closed_at=now,
            closed_reason=reason,
            updated_at=now,
        )
        self._ledger.update(updated)
        logger.info("Closed work order #%s (%s)", work_order_id, reason.value)
        return updated

    def send_due_notifications(self, user_id: int, recipient_email: Optional[str], window: timedelta) -> int:
        """Email a reminder for each open work order due within ``window``.

        Each work order is notified at most once per window length: a
        successful send is followed by a notification log entry, and logged
        work orders are excluded from later passes. A delivery failure leaves
        the work order un-logged so a later call retries it, and does not stop
        the remaining work orders from being attempted.

        Returns the number of work orders notified.
        """

        if not recipient_email or not recipient_email.strip():
            raise InvalidInputError("Recipient email is required")
        if window <= timedelta(0):
            raise InvalidInputError("Notification window must be positive")
        if self._gateway is None:
            raise NotConfiguredError("Email sender not configured")

        recipient = recipient_email.strip()
        now = self._clock.now()
        until = now + window
        tag = window_tag(window)

        due_soon = self._ledger.list_due_soon_unnotified(user_id, now, until, tag)
        sent = 0
        for order in due_soon:
            reminder = render_due_reminder(order, self._display_timezone)
            try:
                self._gateway.send_email(recipient, reminder.subject, reminder.html_body, reminder.text_body)
            except NotificationDeliveryError as exc:
                logger.warning(
                    "Reminder for work order #%s (%s window) not delivered: %s",
                    order.id,
                    tag,
                    exc,
                )
                continue
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Reminder for work order #%s (%s window) failed in the email gateway",
                    order.id,
                    tag,
                    exc_info=True,
                )
                continue

            if not self._ledger.append_notification_log(order.id, tag, now):
                logger.debug("Work order #%s was already logged for the %s window", order.id, tag)
            sent += 1

        logger.info(
            "Sent %s of %s due-soon reminder(s) for user #%s (%s window)",
            sent,
            len(due_soon),
            user_id,
            tag,
        )
        return sent

    def _load_owned(self, work_order_id: int, actor_user_id: int) -> WorkOrder:
        existing = self._ledger.get(work_order_id)
        if existing is None:
            raise NotFoundError("Work order not found")
        if existing.creator_user_id != actor_user_id:
            raise NotOwnerError()
        return existing


__all__ = ["WorkOrderManager", "window_tag"]
