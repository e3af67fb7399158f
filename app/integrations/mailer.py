from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger

from app.core.config import settings
from app.integrations.base import DeliveryError, TransportNotConfigured


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    sender: Optional[str] = None


class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class ResendEmailTransport:
    """Resend HTTP API. Success/failure only."""

    def __init__(self, api_key: str, url: str = "https://api.resend.com/emails",
                 default_sender: str = "", client: Optional[httpx.AsyncClient] = None,
                 timeout_s: float = 10.0):
        self.api_key = api_key
        self.url = url
        self.default_sender = default_sender
        self._client = client
        self.timeout_s = timeout_s

    async def send(self, message: EmailMessage) -> None:
        if not self.api_key:
            raise TransportNotConfigured("Resend API key not configured")

        payload = {
            "from": message.sender or self.default_sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        if self._client is not None:
            r = await self._client.post(self.url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.post(self.url, json=payload, headers=headers)

        if r.status_code >= 400:
            raise DeliveryError(f"Email send failed: {r.status_code} {r.text[:200]}")

        logger.debug(f"Email sent to {message.to}")


def get_email_transport() -> ResendEmailTransport:
    return ResendEmailTransport(
        settings.resend_api_key,
        url=settings.resend_url,
        default_sender=settings.email_from,
        timeout_s=settings.http_timeout_seconds,
    )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

@dataclass
class SampleEmailContext:
    headline: str
    intro: str
    brand_name: str
    factory_name: str
    sample_id: str
    rows: Dict[str, Any] = field(default_factory=dict)
    link_path: str = "/rep/tabs/samples"
    action_required: bool = True


def _row(label: str, value: Any) -> str:
    shown = html.escape(str(value)) if value not in (None, "") else "Not specified"
    return (
        '<tr><td style="font-weight:600;color:#495057;padding:4px 12px 4px 0;">'
        f"{html.escape(label)}:</td><td>{shown}</td></tr>"
    )


def render_sample_email(ctx: SampleEmailContext, app_url: Optional[str] = None) -> str:
    app_url = (app_url or settings.app_url).rstrip("/")
    rows = [_row("Brand", ctx.brand_name), _row("Factory", ctx.factory_name)]
    rows.extend(_row(label, value) for label, value in ctx.rows.items())

    banner = ""
    if ctx.action_required:
        banner = (
            '<p style="background:#fff3cd;border:1px solid #ffeaa7;padding:10px;">'
            "<strong>Action Required:</strong> Please review this sample request.</p>"
        )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(ctx.headline)}</title></head>
<body style="font-family:-apple-system,Segoe UI,Roboto,sans-serif;color:#333;">
  <h1>{html.escape(ctx.headline)}</h1>
  <p>{html.escape(ctx.intro)}</p>
  {banner}
  <table>{''.join(rows)}</table>
  <p><a href="{html.escape(app_url + ctx.link_path)}">View Sample Request</a></p>
  <p style="color:#6c757d;font-size:14px;">
    This notification was sent automatically by the Maryadha platform.<br>
    Sample Request ID: {html.escape(ctx.sample_id)}
  </p>
</body>
</html>
"""
