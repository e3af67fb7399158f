from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx
from loguru import logger

from app.core.config import settings
from app.integrations.base import DeliveryError, TransportNotConfigured


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None


class PushTransport(Protocol):
    async def send(self, tokens: Sequence[str], message: PushMessage) -> None: ...


class FcmPushTransport:
    """
    Firebase Cloud Messaging legacy HTTP API: one request per batch of tokens.
    No delivery receipts are tracked.
    """

    def __init__(self, server_key: str, url: str = "https://fcm.googleapis.com/fcm/send",
                 client: Optional[httpx.AsyncClient] = None, timeout_s: float = 10.0):
        self.server_key = server_key
        self.url = url
        self._client = client
        self.timeout_s = timeout_s

    async def send(self, tokens: Sequence[str], message: PushMessage) -> None:
        if not self.server_key:
            raise TransportNotConfigured("FCM server key not configured")
        if not tokens:
            return

        payload = {
            "registration_ids": list(tokens),
            "notification": {"title": message.title, "body": message.body},
        }
        if message.data:
            payload["data"] = message.data

        headers = {"Authorization": f"key={self.server_key}"}

        if self._client is not None:
            r = await self._client.post(self.url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.post(self.url, json=payload, headers=headers)

        if r.status_code >= 400:
            raise DeliveryError(f"Push send failed: {r.status_code} {r.text[:200]}")

        logger.debug(f"Push sent to {len(tokens)} device(s)")


def get_push_transport() -> FcmPushTransport:
    return FcmPushTransport(
        settings.fcm_server_key,
        url=settings.fcm_url,
        timeout_s=settings.http_timeout_seconds,
    )
