"""SQLite-backed persistence for users, work orders and the notification log."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .errors import AlreadyExistsError, NotFoundError
from .models import CloseReason, NotificationLogEntry, Priority, Stage, User, WorkOrder

logger = logging.getLogger("trackit.database")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "trackit.sqlite3").resolve(strict=False)


def _serialize_datetime(value: datetime) -> str:
    # Fixed-width UTC text keeps sub-second precision and sorts correctly in SQL.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_duplicate_username(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed: users.username" in str(exc)


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return _parse_datetime(str(value))


class Database:
    """Simple wrapper around SQLite that owns the schema."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT,
                    password_hash BLOB NOT NULL,
                    password_salt BLOB NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS work_orders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    creator_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    summary TEXT NOT NULL,
                    details TEXT,
                    due_at TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    closed INTEGER NOT NULL DEFAULT 0,
                    closed_at TEXT,
                    closed_reason TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS notification_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    work_order_id INTEGER NOT NULL REFERENCES work_orders(id) ON DELETE CASCADE,
                    window_tag TEXT NOT NULL,
                    sent_at TEXT NOT NULL,
                    UNIQUE (work_order_id, window_tag)
                );

                CREATE INDEX IF NOT EXISTS idx_work_orders_creator_due
                    ON work_orders(creator_user_id, closed, due_at);
                """
            )
        logger.debug("Schema ensured at %s", self._path)


class SqliteUserDirectory:
    """:class:`~trackit.ports.UserDirectory` stored in the ``users`` table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def find_by_username(self, username: str) -> Optional[User]:
        with self._database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def exists(self, username: str) -> bool:
        with self._database.connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM users WHERE username = ? LIMIT 1",
                (username,),
            ).fetchone()
        return row is not None

    def insert(self, user: User) -> int:
        with self._database.connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (username, email, password_hash, password_salt, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        user.username,
                        user.email,
                        sqlite3.Binary(user.password_hash),
                        sqlite3.Binary(user.password_salt),
                        _serialize_datetime(user.created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if not _is_duplicate_username(exc):
                    raise
                raise AlreadyExistsError("Username already exists") from exc
            return int(cursor.lastrowid)

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            username=str(row["username"]),
            email=row["email"],
            password_hash=bytes(row["password_hash"]),
            password_salt=bytes(row["password_salt"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


class SqliteWorkOrderLedger:
    """:class:`~trackit.ports.WorkOrderLedger` stored in SQLite.

    Every method is a single statement on its own connection, so each record
    update and each log append is individually atomic and durable.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def insert(self, order: WorkOrder) -> int:
        with self._database.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO work_orders (
                    creator_user_id, summary, details, due_at, priority, stage,
                    closed, closed_at, closed_reason, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    order.creator_user_id,
                    order.summary,
                    order.details,
                    _serialize_datetime(order.due_at),
                    order.priority.value,
                    order.stage.value,
                    int(bool(order.closed)),
                    _serialize_datetime(order.closed_at) if order.closed_at else None,
                    order.closed_reason.value if order.closed_reason else None,
                    _serialize_datetime(order.created_at),
                    _serialize_datetime(order.updated_at),
                ),
            )
            return int(cursor.lastrowid)

    def get(self, work_order_id: int) -> Optional[WorkOrder]:
        with self._database.connect() as conn:
            row = conn.execute(
                "SELECT * FROM work_orders WHERE id = ?",
                (work_order_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_work_order(row)

    def list_open_by_creator(self, creator_user_id: int) -> List[WorkOrder]:
        with self._database.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM work_orders
                 WHERE creator_user_id = ? AND closed = 0
                 ORDER BY due_at ASC, id ASC
                """,
                (creator_user_id,),
            ).fetchall()
        return [self._row_to_work_order(row) for row in rows]

    def update(self, order: WorkOrder) -> None:
        if order.id is None:
            raise NotFoundError("Work order not found")

        with self._database.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE work_orders
                   SET summary = ?, details = ?, due_at = ?, priority = ?, stage = ?,
                       closed = ?, closed_at = ?, closed_reason = ?, updated_at = ?
                 WHERE id = ?
                """,
                (
                    order.summary,
                    order.details,
                    _serialize_datetime(order.due_at),
                    order.priority.value,
                    order.stage.value,
                    int(bool(order.closed)),
                    _serialize_datetime(order.closed_at) if order.closed_at else None,
                    order.closed_reason.value if order.closed_reason else None,
                    _serialize_datetime(order.updated_at),
                    order.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Work order not found")

    def list_due_soon_unnotified(
        self,
        user_id: int,
        now: datetime,
        until: datetime,
        window_tag: str,
    ) -> List[WorkOrder]:
        with self._database.connect() as conn:
            rows = conn.execute(
                """
                SELECT w.* FROM work_orders AS w
                 WHERE w.creator_user_id = ?
                   AND w.closed = 0
                   AND w.due_at >= ?
                   AND w.due_at <= ?
                   AND NOT EXISTS (
                       SELECT 1 FROM notification_log AS n
                        WHERE n.work_order_id = w.id AND n.window_tag = ?
                   )
                 ORDER BY w.due_at ASC, w.id ASC
                """,
                (user_id, _serialize_datetime(now), _serialize_datetime(until), window_tag),
            ).fetchall()
        return [self._row_to_work_order(row) for row in rows]

    def append_notification_log(self, work_order_id: int, window_tag: str, sent_at: datetime) -> bool:
        with self._database.connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO notification_log (work_order_id, window_tag, sent_at)
                VALUES (?, ?, ?)
                """,
                (work_order_id, window_tag, _serialize_datetime(sent_at)),
            )
            return cursor.rowcount > 0

    def list_notification_log(self, work_order_id: int) -> List[NotificationLogEntry]:
        with self._database.connect() as conn:
            rows = conn.execute(
                """
                SELECT work_order_id, window_tag, sent_at FROM notification_log
                 WHERE work_order_id = ?
                 ORDER BY id ASC
                """,
                (work_order_id,),
            ).fetchall()
        return [
            NotificationLogEntry(
                work_order_id=int(row["work_order_id"]),
                window_tag=str(row["window_tag"]),
                sent_at=_parse_datetime(str(row["sent_at"])),
            )
            for row in rows
        ]

    def _row_to_work_order(self, row: sqlite3.Row) -> WorkOrder:
        reason = row["closed_reason"]
        return WorkOrder(
            id=int(row["id"]),
            creator_user_id=int(row["creator_user_id"]),
            summary=str(row["summary"]),
            details=row["details"],
            due_at=_parse_datetime(str(row["due_at"])),
            priority=Priority(row["priority"]),
            stage=Stage(row["stage"]),
            closed=bool(row["closed"]),
            closed_at=_optional_datetime(row["closed_at"]),
            closed_reason=CloseReason(reason) if reason is not None else None,
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = [
    "Database",
    "SqliteUserDirectory",
    "SqliteWorkOrderLedger",
    "resolve_database_path",
]
