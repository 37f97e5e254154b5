"""Work order tracking with due-soon email reminders."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .users import UserRegistry
from .workorders import WorkOrderManager


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the JSON API application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "UserRegistry",
    "WorkOrderManager",
    "create_app",
    "resolve_database_path",
]
