from functools import lru_cache

from fastapi import Depends
from sqlmodel import Session

from app.db.core import get_session
from app.integrations.payment_processor import get_payment_processor
from app.services.ledger import StatusLedger
from app.services.lifecycle import SampleLifecycleService
from app.services.notifications import NotificationDispatcher, NotificationService
from app.services.orders import OrderPromoter
from app.services.payment import PaymentGate


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """One dispatcher (and its transports) per process."""
    return NotificationDispatcher()


def get_payment_gate(session: Session = Depends(get_session)) -> PaymentGate:
    return PaymentGate(session, processor=get_payment_processor())


def get_lifecycle_service(
    session: Session = Depends(get_session),
    gate: PaymentGate = Depends(get_payment_gate),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> SampleLifecycleService:
    """Creates a SampleLifecycleService bound to the active DB session."""
    return SampleLifecycleService(session, payment_gate=gate, dispatcher=dispatcher)


def get_ledger(session: Session = Depends(get_session)) -> StatusLedger:
    return StatusLedger(session)


def get_order_promoter(session: Session = Depends(get_session)) -> OrderPromoter:
    return OrderPromoter(session)


def get_notification_service(session: Session = Depends(get_session)) -> NotificationService:
    return NotificationService(session)
