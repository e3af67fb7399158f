"""
Payment processor clients.

The processor is an opaque intent-creation service: it creates customers and
payment intents and hands back a client secret the mobile app uses to collect
funds. Every failure surfaces as PaymentGatewayError.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger

from app.core.config import settings
from app.core.exceptions import PaymentGatewayError


@dataclass(frozen=True)
class ProcessorCustomer:
    id: str


@dataclass(frozen=True)
class ProcessorIntent:
    id: str
    client_secret: Optional[str]
    status: str
    amount: int
    currency: str


class PaymentProcessor(Protocol):
    def create_customer(self, *, brand_id: uuid.UUID, email: Optional[str],
                        name: Optional[str], idempotency_key: str) -> ProcessorCustomer: ...

    def create_payment_intent(self, *, amount_minor: int, currency: str, customer_id: str,
                              metadata: Dict[str, str], idempotency_key: str) -> ProcessorIntent: ...

    def cancel_payment_intent(self, intent_id: str) -> None: ...


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


class StripeProcessor:
    """
    Stripe REST client (form-encoded, Idempotency-Key on every create).
    """

    def __init__(self, api_key: str, base_url: str = "https://api.stripe.com/v1",
                 client: Optional[httpx.Client] = None, timeout_s: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout_s)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    def _post(self, path: str, data: Dict[str, Any],
              idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        headers = dict(self._headers)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            r = self._client.post(f"{self.base_url}{path}", data=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Stripe request to {path} failed: {e}")
            raise PaymentGatewayError(f"Payment processor unreachable: {e}") from e

        try:
            payload = r.json()
        except ValueError:
            payload = {}

        if r.status_code >= 400:
            message = (payload.get("error") or {}).get("message") or r.text[:200]
            logger.error(f"Stripe {path} -> {r.status_code}: {message}")
            raise PaymentGatewayError(f"Payment processor error: {message}")

        return payload

    def create_customer(self, *, brand_id, email, name, idempotency_key) -> ProcessorCustomer:
        data = {"metadata[brand_id]": str(brand_id)}
        if email:
            data["email"] = email
        if name:
            data["name"] = name

        payload = self._post("/customers", data, idempotency_key)
        return ProcessorCustomer(id=payload["id"])

    def create_payment_intent(self, *, amount_minor, currency, customer_id,
                              metadata, idempotency_key) -> ProcessorIntent:
        data = {
            "amount": str(amount_minor),
            "currency": currency.lower(),
            "customer": customer_id,
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = value

        payload = self._post("/payment_intents", data, idempotency_key)
        return ProcessorIntent(
            id=payload["id"],
            client_secret=payload.get("client_secret"),
            status=payload.get("status", "requires_payment_method"),
            amount=int(payload.get("amount", amount_minor)),
            currency=payload.get("currency", currency.lower()),
        )

    def cancel_payment_intent(self, intent_id: str) -> None:
        self._post(f"/payment_intents/{intent_id}/cancel", {})


class MockProcessor:
    """
    Dev/test processor. Keeps everything in memory and honours idempotency keys.
    """

    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.customers: Dict[str, ProcessorCustomer] = {}
        self.intents: Dict[str, ProcessorIntent] = {}
        self.cancelled: list[str] = []
        self._by_key: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def create_customer(self, *, brand_id, email, name, idempotency_key) -> ProcessorCustomer:
        if self.fail:
            raise PaymentGatewayError("Mock processor failure")
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            customer = ProcessorCustomer(id=f"cus_mock_{uuid.uuid4().hex[:12]}")
            self.customers[customer.id] = customer
            self._by_key[idempotency_key] = customer
            return customer

    def create_payment_intent(self, *, amount_minor, currency, customer_id,
                              metadata, idempotency_key) -> ProcessorIntent:
        if self.fail:
            raise PaymentGatewayError("Mock processor failure")
        with self._lock:
            if idempotency_key in self._by_key:
                return self._by_key[idempotency_key]

            intent_id = f"pi_mock_{uuid.uuid4().hex[:12]}"
            intent = ProcessorIntent(
                id=intent_id,
                client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:8]}",
                status="requires_payment_method",
                amount=amount_minor,
                currency=currency.lower(),
            )
            self.intents[intent.id] = intent
            self._by_key[idempotency_key] = intent
            return intent

    def cancel_payment_intent(self, intent_id: str) -> None:
        self.cancelled.append(intent_id)


_PROCESSOR: Optional[PaymentProcessor] = None


def get_payment_processor() -> PaymentProcessor:
    global _PROCESSOR
    if _PROCESSOR is not None:
        return _PROCESSOR

    key = (settings.payment_processor or "").strip().lower()
    if key == "stripe":
        _PROCESSOR = StripeProcessor(
            settings.stripe_secret_key,
            base_url=settings.stripe_api_base,
            timeout_s=settings.http_timeout_seconds,
        )
    else:
        _PROCESSOR = MockProcessor()
    return _PROCESSOR
