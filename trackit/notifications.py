"""Due-soon reminder rendering and the Resend email gateway."""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Any, Dict, Optional

import httpx

from .config import DEFAULT_SENDER, RESEND_ENDPOINT, NotificationSettings
from .errors import NotConfiguredError, NotificationDeliveryError
from .models import WorkOrder

logger = logging.getLogger("trackit.notifications")

_DUE_FORMAT = "%Y-%m-%d %H:%M %Z"


@dataclass(frozen=True)
class DueReminder:
    subject: str
    html_body: str
    text_body: str


def render_due_reminder(order: WorkOrder, tz: tzinfo = timezone.utc) -> DueReminder:
    """Build the reminder message for a work order that is due soon."""

    due_text = order.due_at.astimezone(tz).strftime(_DUE_FORMAT)
    priority = order.priority.value.capitalize()

    subject = f"Due soon: {order.summary} ({due_text})"
    html_body = (
        "<h3>Work order due soon</h3>\n"
        f"<p><strong>{html.escape(order.summary)}</strong></p>\n"
        f"<p>Priority: {priority}</p>\n"
        f"<p>Due: {html.escape(due_text)}</p>"
    )
    if order.details:
        html_body += f"\n<p>{html.escape(order.details)}</p>"

    lines = [
        "Work order due soon",
        "",
        f"Work order: {order.summary}",
        f"Priority: {priority}",
        f"Due: {due_text}",
    ]
    if order.details:
        lines.extend(["", order.details])
    return DueReminder(subject=subject, html_body=html_body, text_body="\n".join(lines))


class ResendGateway:
    """Send email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str = DEFAULT_SENDER,
        *,
        endpoint: str = RESEND_ENDPOINT,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise NotConfiguredError("A Resend API key is required to send email")
        self._api_key = api_key.strip()
        self._sender = sender
        self._endpoint = endpoint
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def send_email(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {
            "from": self._sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            payload["text"] = text_body

        try:
            response = self._client.post(
                self._endpoint,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise NotificationDeliveryError(f"Failed to contact email service: {exc}") from exc

        if not response.is_success:
            raise NotificationDeliveryError(
                f"Email service responded with {response.status_code}: {response.text.strip()}"
            )
        logger.debug("Email accepted by %s for %s", self._endpoint, to)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ResendGateway":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_gateway(settings: Optional[NotificationSettings]) -> Optional[ResendGateway]:
    """Return a gateway for ``settings`` or ``None`` when email is not configured."""

    if settings is None or not settings.api_key:
        return None
    return ResendGateway(
        settings.api_key,
        settings.sender,
        endpoint=settings.endpoint,
        timeout=settings.timeout,
    )


__all__ = [
    "DEFAULT_SENDER",
    "RESEND_ENDPOINT",
    "DueReminder",
    "ResendGateway",
    "build_gateway",
    "render_due_reminder",
]
