"""Configuration management for the Trackit service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta, timezone, tzinfo
from pathlib import Path
from typing import Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .database import resolve_database_path

RESEND_ENDPOINT = "https://api.resend.com/emails"
DEFAULT_SENDER = "onboarding@resend.dev"
DEFAULT_WINDOW = timedelta(hours=24)


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _resolve_path(raw: str, base_path: Optional[Path]) -> Path:
    candidate = Path(raw).expanduser()
    if candidate.is_absolute() or base_path is None:
        return candidate.resolve(strict=False)
    return (base_path / candidate).resolve(strict=False)


def resolve_timezone(name: str) -> tzinfo:
    """Return the ``tzinfo`` for an IANA zone name."""

    if name.strip().upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown display timezone '{name}'") from exc


@dataclass(frozen=True)
class NotificationSettings:
    """Credentials and endpoint for outbound email."""

    api_key: str
    sender: str = DEFAULT_SENDER
    endpoint: str = RESEND_ENDPOINT
    timeout: float = 10.0

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "NotificationSettings":
        api_key = data.get("api_key")
        if not api_key:
            raise ValueError("Notification settings require an 'api_key'")
        try:
            timeout = float(data.get("timeout", 10.0))  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError("Notification 'timeout' must be a number of seconds") from exc
        if timeout <= 0:
            raise ValueError("Notification 'timeout' must be positive")
        return NotificationSettings(
            api_key=str(api_key),
            sender=str(data.get("sender") or DEFAULT_SENDER),
            endpoint=str(data.get("endpoint") or RESEND_ENDPOINT),
            timeout=timeout,
        )


@dataclass(frozen=True)
class TrackitConfig:
    """Runtime configuration for the services, API and command line."""

    database_path: Path = field(default_factory=lambda: resolve_database_path(None))
    notifications: Optional[NotificationSettings] = None
    default_window: timedelta = DEFAULT_WINDOW
    display_timezone: str = "UTC"

    @property
    def timezone(self) -> tzinfo:
        return resolve_timezone(self.display_timezone)

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "TrackitConfig":
        """Create a :class:`TrackitConfig` from raw dictionary data."""

        database = data.get("database")
        database_path = _resolve_path(str(database), base_path) if database else resolve_database_path(None)

        notifications_raw = data.get("notifications")
        notifications = None
        if notifications_raw:
            if not isinstance(notifications_raw, Mapping):
                raise ValueError("'notifications' must be a mapping")
            notifications = NotificationSettings.from_dict(notifications_raw)

        raw_hours = data.get("default_window_hours", 24)
        try:
            hours = float(raw_hours)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError("'default_window_hours' must be a number") from exc
        if hours <= 0:
            raise ValueError("'default_window_hours' must be positive")

        display_timezone = str(data.get("display_timezone") or "UTC")
        resolve_timezone(display_timezone)

        return TrackitConfig(
            database_path=database_path,
            notifications=notifications,
            default_window=timedelta(hours=hours),
            display_timezone=display_timezone,
        )


def apply_environment(config: TrackitConfig, environ: Mapping[str, str] | None = None) -> TrackitConfig:
    """Overlay ``TRACKIT_*`` and ``RESEND_*`` environment variables on ``config``."""

    env = os.environ if environ is None else environ
    overrides: Dict[str, object] = {}

    db_path = env.get("TRACKIT_DB_PATH")
    if db_path:
        overrides["database_path"] = Path(db_path).expanduser().resolve(strict=False)

    display_tz = env.get("TRACKIT_DISPLAY_TZ")
    if display_tz:
        resolve_timezone(display_tz)
        overrides["display_timezone"] = display_tz

    api_key = env.get("RESEND_API_KEY")
    sender = env.get("RESEND_FROM")
    if api_key or sender:
        current = config.notifications
        if current is None and api_key:
            current = NotificationSettings(api_key=api_key)
        if current is not None:
            current = replace(
                current,
                api_key=api_key or current.api_key,
                sender=sender or current.sender,
            )
        overrides["notifications"] = current

    if not overrides:
        return config
    return replace(config, **overrides)


def load_config(config_path: Optional[Path] = None, environ: Mapping[str, str] | None = None) -> TrackitConfig:
    """Load configuration from a YAML file and the environment.

    A missing file is not an error; defaults and environment variables apply.
    """

    config = TrackitConfig()
    if config_path is not None and config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        config = TrackitConfig.from_dict(raw, base_path=config_path.parent)

    return apply_environment(config, environ)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_project_root() / "config" / "trackit.yaml").resolve(strict=False)


__all__ = [
    "DEFAULT_SENDER",
    "DEFAULT_WINDOW",
    "RESEND_ENDPOINT",
    "NotificationSettings",
    "TrackitConfig",
    "apply_environment",
    "load_config",
    "resolve_config_path",
    "resolve_timezone",
]
