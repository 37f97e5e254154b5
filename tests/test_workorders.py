from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trackit.clock import FixedClock
from trackit.errors import (
    AlreadyClosedError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    NotOwnerError,
)
from trackit.memory import InMemoryWorkOrderLedger
from trackit.models import CloseReason, Priority, Stage
from trackit.workorders import WorkOrderManager

NOW = datetime(2025, 10, 10, tzinfo=timezone.utc)
OWNER = 1
STRANGER = 2


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture()
def ledger() -> InMemoryWorkOrderLedger:
    return InMemoryWorkOrderLedger()


@pytest.fixture()
def manager(ledger: InMemoryWorkOrderLedger, clock: FixedClock) -> WorkOrderManager:
    return WorkOrderManager(ledger, clock=clock)


@pytest.mark.parametrize(
    ("due", "expected"),
    [
        (datetime(2025, 10, 9, 23, 0, tzinfo=timezone.utc), Priority.HIGH),
        (datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc), Priority.HIGH),
        (datetime(2025, 10, 11, 0, 0, tzinfo=timezone.utc), Priority.MEDIUM),
        (datetime(2025, 10, 12, 23, 59, tzinfo=timezone.utc), Priority.MEDIUM),
        (datetime(2025, 10, 13, 0, 0, tzinfo=timezone.utc), Priority.LOW),
        (datetime(2025, 10, 15, 0, 0, tzinfo=timezone.utc), Priority.LOW),
    ],
)
def test_suggest_priority_buckets(manager: WorkOrderManager, due: datetime, expected: Priority) -> None:
    assert manager.suggest_priority(due) is expected


def test_suggest_priority_normalizes_offsets(manager: WorkOrderManager) -> None:
    # 2025-10-11T02:00+02:00 is exactly 24h after NOW.
    due = datetime(2025, 10, 11, 2, 0, tzinfo=timezone(timedelta(hours=2)))
    assert manager.suggest_priority(due) is Priority.MEDIUM


def test_add_creates_open_record_with_inferred_priority(
    manager: WorkOrderManager, ledger: InMemoryWorkOrderLedger
) -> None:
    due = datetime(2025, 10, 10, 8, 0, tzinfo=timezone(timedelta(hours=2)))
    work_order_id = manager.add(OWNER, "  Replace filter ", "  ", due)

    order = ledger.get(work_order_id)
    assert order is not None
    assert order.summary == "Replace filter"
    assert order.details is None
    assert order.due_at == datetime(2025, 10, 10, 6, 0, tzinfo=timezone.utc)
    assert order.due_at.tzinfo == timezone.utc
    assert order.priority is Priority.HIGH
    assert order.stage is Stage.OPEN
    assert order.closed is False
    assert order.closed_at is None
    assert order.closed_reason is None
    assert order.created_at == order.updated_at == NOW


def test_add_keeps_explicit_priority(manager: WorkOrderManager, ledger: InMemoryWorkOrderLedger) -> None:
    work_order_id = manager.add(OWNER, "Audit", None, NOW + timedelta(hours=1), Priority.LOW)
    order = ledger.get(work_order_id)
    assert order is not None
    assert order.priority is Priority.LOW


@pytest.mark.parametrize("summary", ["", "   ", None])
def test_add_rejects_blank_summary(
    manager: WorkOrderManager, ledger: InMemoryWorkOrderLedger, summary
) -> None:
    with pytest.raises(InvalidInputError):
        manager.add(OWNER, summary, None, NOW)
    assert ledger.list_open_by_creator(OWNER) == []


def test_list_open_orders_by_due_time_and_excludes_closed(manager: WorkOrderManager) -> None:
    later = manager.add(OWNER, "Later", None, NOW + timedelta(days=3))
    sooner = manager.add(OWNER, "Sooner", None, NOW + timedelta(hours=1))
    closed = manager.add(OWNER, "Done", None, NOW + timedelta(minutes=5))
    manager.add(STRANGER, "Not mine", None, NOW + timedelta(minutes=1))
    manager.close(closed, OWNER, CloseReason.RESOLVED)

    orders = manager.list_open(OWNER)

    assert [order.id for order in orders] == [sooner, later]
    assert all(not order.closed for order in orders)


def test_change_stage_updates_timestamps(manager: WorkOrderManager, clock: FixedClock) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))
    clock.advance(timedelta(minutes=10))

    updated = manager.change_stage(work_order_id, OWNER, Stage.AWAITING_PARTS)

    assert updated.stage is Stage.AWAITING_PARTS
    assert updated.closed is False
    assert updated.created_at == NOW
    assert updated.updated_at == NOW + timedelta(minutes=10)
    assert manager.get(work_order_id, OWNER) == updated


def test_change_stage_to_closed_sets_closed_at_once(manager: WorkOrderManager, clock: FixedClock) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))
    clock.advance(timedelta(hours=1))
    first = manager.change_stage(work_order_id, OWNER, Stage.CLOSED)
    assert first.closed is True
    assert first.closed_at == NOW + timedelta(hours=1)

    clock.advance(timedelta(hours=1))
    again = manager.change_stage(work_order_id, OWNER, Stage.CLOSED)
    assert again.closed is True
    assert again.closed_at == first.closed_at
    assert again.updated_at == NOW + timedelta(hours=2)


def test_change_stage_on_closed_record_is_rejected(manager: WorkOrderManager) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))
    manager.close(work_order_id, OWNER, CloseReason.RESOLVED)

    for stage in (Stage.OPEN, Stage.IN_PROGRESS, Stage.AWAITING_PARTS):
        with pytest.raises(InvalidTransitionError):
            manager.change_stage(work_order_id, OWNER, stage)


def test_change_stage_unknown_and_foreign_records(manager: WorkOrderManager) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))

    with pytest.raises(NotFoundError):
        manager.change_stage(999, OWNER, Stage.IN_PROGRESS)
    with pytest.raises(NotOwnerError):
        manager.change_stage(work_order_id, STRANGER, Stage.IN_PROGRESS)
    with pytest.raises(NotOwnerError):
        manager.get(work_order_id, STRANGER)


def test_close_records_reason_and_rejects_second_close(manager: WorkOrderManager, clock: FixedClock) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))
    clock.advance(timedelta(minutes=30))

    closed = manager.close(work_order_id, OWNER, CloseReason.CANCELLED)

    assert closed.stage is Stage.CLOSED
    assert closed.closed is True
    assert closed.closed_at == NOW + timedelta(minutes=30)
    assert closed.closed_reason is CloseReason.CANCELLED
    assert closed.updated_at == closed.closed_at

    with pytest.raises(AlreadyClosedError):
        manager.close(work_order_id, OWNER, CloseReason.RESOLVED)
    assert manager.get(work_order_id, OWNER).closed_reason is CloseReason.CANCELLED


def test_close_checks_owner_before_closed_state(manager: WorkOrderManager) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))
    manager.close(work_order_id, OWNER, CloseReason.RESOLVED)

    with pytest.raises(NotOwnerError):
        manager.close(work_order_id, STRANGER, CloseReason.RESOLVED)
    with pytest.raises(NotFoundError):
        manager.close(12345, OWNER, CloseReason.RESOLVED)


def test_updates_do_not_mutate_previous_values(manager: WorkOrderManager) -> None:
    work_order_id = manager.add(OWNER, "Inspect", None, NOW + timedelta(days=1))
    before = manager.get(work_order_id, OWNER)

    manager.change_stage(work_order_id, OWNER, Stage.IN_PROGRESS)

    assert before.stage is Stage.OPEN
    assert manager.get(work_order_id, OWNER).stage is Stage.IN_PROGRESS
