"""Command-line interface for the Trackit work order service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from datetime import timedelta, tzinfo
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

try:
    import yaml  # noqa: F401
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'PyYAML' package is required. Run `pip install -e .` to install dependencies."
    ) from exc

from trackit.clock import SystemClock
from trackit.config import TrackitConfig, load_config, resolve_config_path
from trackit.database import Database, SqliteUserDirectory, SqliteWorkOrderLedger
from trackit.dueparse import DUE_FORMAT_HINT, parse_due
from trackit.errors import TrackitError
from trackit.models import CloseReason, Priority, Stage, User, WorkOrder
from trackit.notifications import build_gateway
from trackit.ports import NotificationGateway
from trackit.users import UserRegistry
from trackit.workorders import WorkOrderManager

logger = logging.getLogger("trackit.main")

KNOWN_COMMANDS = {"serve", "init-db", "add", "list", "stage", "close", "notify"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trackit work order utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (defaults to TRACKIT_CONFIG or config/trackit.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the Trackit database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the API (default: 8000)")

    add_parser = subparsers.add_parser("add", help="Create a work order")
    add_parser.add_argument("--username", required=True, help="Owner of the work order")
    add_parser.add_argument("--summary", required=True, help="Short description")
    add_parser.add_argument("--due", required=True, help=f"Due time. {DUE_FORMAT_HINT}")
    add_parser.add_argument("--details", default=None, help="Optional longer description")
    add_parser.add_argument(
        "--priority",
        choices=[priority.value for priority in Priority],
        default=None,
        help="Priority (inferred from the due time when omitted)",
    )

    list_parser = subparsers.add_parser("list", help="List open work orders")
    list_parser.add_argument("--username", required=True)

    stage_parser = subparsers.add_parser("stage", help="Move a work order to another stage")
    stage_parser.add_argument("--username", required=True)
    stage_parser.add_argument("--id", type=int, required=True, dest="work_order_id")
    stage_parser.add_argument("--stage", required=True, choices=[stage.value for stage in Stage])

    close_parser = subparsers.add_parser("close", help="Close a work order")
    close_parser.add_argument("--username", required=True)
    close_parser.add_argument("--id", type=int, required=True, dest="work_order_id")
    close_parser.add_argument(
        "--reason",
        choices=[reason.value for reason in CloseReason],
        default=CloseReason.RESOLVED.value,
    )

    notify_parser = subparsers.add_parser(
        "notify", help="Send due-soon reminders once (suitable for cron or a systemd timer)"
    )
    notify_parser.add_argument("--username", required=True)
    notify_parser.add_argument("--email", default=None, help="Recipient (defaults to the user's email)")
    notify_parser.add_argument(
        "--window-hours",
        type=float,
        default=None,
        help="Look-ahead window in hours (defaults to the configured window)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help") or first == "--config" or first.startswith("--config="):
            return parser.parse_args(args_list)
        if first not in KNOWN_COMMANDS:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_config(config_arg: str | None) -> TrackitConfig:
    path = resolve_config_path(config_arg or os.getenv("TRACKIT_CONFIG"))
    return load_config(path)


def _initialise_database(config: TrackitConfig) -> Database:
    database = Database(config.database_path)
    database.initialize()
    logger.info("Database initialised at %s", config.database_path)
    return database


def _build_manager(
    database: Database,
    config: TrackitConfig,
    gateway: NotificationGateway | None,
) -> WorkOrderManager:
    return WorkOrderManager(
        SqliteWorkOrderLedger(database),
        gateway,
        display_timezone=config.timezone,
    )


def _require_user(database: Database, username: str) -> User:
    user = UserRegistry(SqliteUserDirectory(database)).lookup(username)
    if user is None or user.id is None:
        raise SystemExit(f"Unknown user '{username}'. Create one with scripts/create_user.py.")
    return user


def _serve(*, database: Database, config: TrackitConfig, host: str, port: int) -> None:
    from trackit.service import create_app
    import uvicorn

    logger.info("Starting Trackit API on http://%s:%s", host, port)
    app = create_app(database=database, config=config)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _format_row(order: WorkOrder, tz: tzinfo) -> str:
    due = order.due_at.astimezone(tz).strftime("%Y-%m-%d %H:%M %Z")
    return f"#{order.id:<5} {due:<22} {order.priority.value:<7} {order.stage.value:<15} {order.summary}"


def _run_command(args: argparse.Namespace, database: Database, config: TrackitConfig) -> int:
    user = _require_user(database, args.username)
    gateway = build_gateway(config.notifications)
    try:
        return _dispatch_command(args, _build_manager(database, config, gateway), user, config)
    finally:
        if gateway is not None:
            gateway.close()


def _dispatch_command(
    args: argparse.Namespace,
    manager: WorkOrderManager,
    user: User,
    config: TrackitConfig,
) -> int:
    user_id = int(user.id or 0)

    if args.command == "add":
        due_at = parse_due(args.due, now=SystemClock().now(), tz=config.timezone)
        priority = Priority(args.priority) if args.priority else None
        work_order_id = manager.add(user_id, args.summary, args.details, due_at, priority)
        print(f"Created work order #{work_order_id}.")
    elif args.command == "list":
        orders = manager.list_open(user_id)
        if not orders:
            print("No open work orders.")
        for order in orders:
            print(_format_row(order, config.timezone))
    elif args.command == "stage":
        order = manager.change_stage(args.work_order_id, user_id, Stage(args.stage))
        print(f"Work order #{order.id} is now {order.stage.value}.")
    elif args.command == "close":
        order = manager.close(args.work_order_id, user_id, CloseReason(args.reason))
        print(f"Work order #{order.id} closed ({args.reason}).")
    elif args.command == "notify":
        window = timedelta(hours=args.window_hours) if args.window_hours else config.default_window
        sent = manager.send_due_notifications(user_id, args.email or user.email, window)
        print(f"Sent {sent} reminder(s).")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    config = _load_config(args.config)
    database = _initialise_database(config)

    if args.command == "serve":
        _serve(
            database=database,
            config=config,
            host=getattr(args, "host", "127.0.0.1"),
            port=getattr(args, "port", 8000),
        )
        return 0
    if args.command == "init-db":
        print("Database initialisation complete.")
        return 0

    try:
        return _run_command(args, database, config)
    except TrackitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
