from __future__ import annotations

from pathlib import Path

import pytest

from main import _parse_args, main
from trackit.database import Database, SqliteUserDirectory
from trackit.security import PasswordDigest
from trackit.users import UserRegistry


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "0.0.0.0", "--port", "9000"])
    assert args.command == "serve"
    assert args.host == "0.0.0.0"
    assert args.port == 9000


def test_work_order_subcommands_parse() -> None:
    args = _parse_args(["close", "--username", "lana", "--id", "3"])
    assert args.command == "close"
    assert args.work_order_id == 3
    assert args.reason == "resolved"

    args = _parse_args(["--config", "trackit.yaml", "notify", "--username", "lana", "--window-hours", "6"])
    assert args.command == "notify"
    assert args.config == "trackit.yaml"
    assert args.window_hours == 6.0


@pytest.fixture()
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("TRACKIT_DB_PATH", "RESEND_API_KEY", "RESEND_FROM", "TRACKIT_DISPLAY_TZ", "TRACKIT_CONFIG"):
        monkeypatch.delenv(name, raising=False)

    db_path = tmp_path / "cli.sqlite3"
    database = Database(db_path)
    database.initialize()
    UserRegistry(SqliteUserDirectory(database), PasswordDigest(rounds=1_000)).register(
        "Lana", "lana@example.com", "Passw0rd!"
    )

    path = tmp_path / "trackit.yaml"
    path.write_text(f"database: {db_path.name}\n", encoding="utf-8")
    return path


def test_cli_manages_work_orders(config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = str(config_file)

    assert main(["--config", config, "add", "--username", "LANA", "--summary", "Inspect boiler", "--due", "+2h"]) == 0
    assert "Created work order #1." in capsys.readouterr().out

    assert main(["--config", config, "list", "--username", "lana"]) == 0
    listing = capsys.readouterr().out
    assert "Inspect boiler" in listing
    assert "high" in listing

    assert main(["--config", config, "stage", "--username", "lana", "--id", "1", "--stage", "in_progress"]) == 0
    assert "in_progress" in capsys.readouterr().out

    assert main(["--config", config, "close", "--username", "lana", "--id", "1"]) == 0
    assert main(["--config", config, "close", "--username", "lana", "--id", "1"]) == 1
    assert "already closed" in capsys.readouterr().err

    assert main(["--config", config, "list", "--username", "lana"]) == 0
    assert "No open work orders." in capsys.readouterr().out


def test_cli_notify_without_email_settings_fails(config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--config", str(config_file), "notify", "--username", "lana"]) == 1
    assert "not configured" in capsys.readouterr().err


def test_cli_rejects_unknown_user(config_file: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--config", str(config_file), "list", "--username", "ghost"])


def test_cli_closes_the_email_gateway_after_a_command(
    config_file: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    class RecordingGateway:
        closed = False

        def send_email(self, to, subject, html_body, text_body=None) -> None:
            raise AssertionError("no reminders expected")

        def close(self) -> None:
            self.closed = True

    gateway = RecordingGateway()
    monkeypatch.setattr("main.build_gateway", lambda settings: gateway)

    assert main(["--config", str(config_file), "list", "--username", "lana"]) == 0
    assert "No open work orders." in capsys.readouterr().out
    assert gateway.closed
