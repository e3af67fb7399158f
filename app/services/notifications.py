"""
Best-effort notification fan-out for sample lifecycle events.

Every event is delivered over three independent channels (in-app record,
push, email). The channels run concurrently, each failure is caught and
reported for that channel alone, and `dispatch` always returns a report.
Re-dispatching an event is not deduplicated: a resend can notify twice.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.exceptions import NotFound
from app.db.core import engine
from app.db.schema import (
    Brand, Factory, Notification, NotificationType, PushToken, Rep,
    SampleRequest, SampleStatus, SampleStatusHistory
)
from app.domain.lifecycle import BRAND_FACING
from app.integrations.base import TransportNotConfigured
from app.integrations.mailer import (
    EmailMessage, EmailTransport, SampleEmailContext, get_email_transport,
    render_sample_email
)
from app.integrations.push import PushMessage, PushTransport, get_push_transport
from app.models.notification import ChannelResult, ChannelStatus, DispatchReport


@dataclass
class NotificationRecipient:
    user_id: Optional[uuid.UUID]
    email: Optional[str] = None
    # None means "look them up at send time"
    push_tokens: Optional[List[str]] = None
    role: str = "rep"


@dataclass
class NotificationEvent:
    """'Lifecycle event E happened to sample S', addressed to one recipient."""
    sample_id: uuid.UUID
    status: SampleStatus
    kind: NotificationType
    title: str
    message: str
    recipient: NotificationRecipient
    details: Dict[str, Any] = field(default_factory=dict)
    email_subject: Optional[str] = None
    email_context: Optional[SampleEmailContext] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)


def _label(status: SampleStatus) -> str:
    return status.value.replace("_", " ")


# ==========================================================================
# EVENT ROUTING
# ==========================================================================

def build_sample_events(
    session: Session,
    sample: SampleRequest,
    entry: Optional[SampleStatusHistory] = None,
) -> List[NotificationEvent]:
    """
    Works out who hears about the sample's current status and what they are told.

    The assigned rep is notified on creation and on every status change; the
    brand is also notified once the sample ships or is delivered.
    """
    status = entry.status if entry else sample.status

    brand = session.get(Brand, sample.brand_id)
    factory = session.get(Factory, sample.factory_id)
    rep = session.get(Rep, sample.rep_id) if sample.rep_id else None

    brand_name = brand.name if brand else "Unknown Brand"
    factory_name = factory.name if factory else "Unknown Factory"
    if not brand:
        logger.warning(f"Brand not found for sample {sample.id}")
    if not factory:
        logger.warning(f"Factory not found for sample {sample.id}")

    details = {
        "sample_id": str(sample.id),
        "brand_id": str(sample.brand_id),
        "factory_id": str(sample.factory_id),
        "status": status.value,
    }

    events: List[NotificationEvent] = []

    if rep is None:
        logger.warning(f"Sample {sample.id} has no rep assigned; rep will not be notified")
    elif status == SampleStatus.REQUESTED:
        message = f"{brand_name} has requested a sample from {factory_name}"
        events.append(NotificationEvent(
            sample_id=sample.id,
            status=status,
            kind=NotificationType.SAMPLE_REQUEST,
            title="New Sample Request",
            message=message,
            recipient=NotificationRecipient(user_id=rep.user_id, email=rep.email),
            details=details,
            email_subject=f"New Sample Request from {brand_name}",
            email_context=SampleEmailContext(
                headline="New Sample Request",
                intro="A brand has submitted a new sample request for your factory",
                brand_name=brand_name,
                factory_name=factory_name,
                sample_id=str(sample.id),
                rows={
                    "Product Name": sample.product_name,
                    "Quantity": sample.quantity,
                    "Preferred MOQ": sample.preferred_moq,
                    "Delivery Address": sample.delivery_address,
                    "Comments": sample.comments,
                    "Finish Notes": sample.finish_notes,
                },
            ),
        ))
    else:
        product = sample.product_name or "Sample"
        message = f"{product} for {brand_name} is now {_label(status)}"
        events.append(NotificationEvent(
            sample_id=sample.id,
            status=status,
            kind=NotificationType.SAMPLE_STATUS,
            title="Sample Status Updated",
            message=message,
            recipient=NotificationRecipient(user_id=rep.user_id, email=rep.email),
            details=details,
            email_subject=f"Sample {_label(status)}: {product}",
            email_context=SampleEmailContext(
                headline="Sample Status Updated",
                intro=message,
                brand_name=brand_name,
                factory_name=factory_name,
                sample_id=str(sample.id),
                rows=_entry_rows(status, entry),
                action_required=False,
            ),
        ))

    if status in BRAND_FACING:
        if brand is None:
            return events

        shipped = status == SampleStatus.SHIPPED
        message = (f"Your sample from {factory_name} is on the way!" if shipped
                   else f"Your sample from {factory_name} has been delivered.")
        if shipped and entry and entry.tracking_number:
            message += f" Tracking: {entry.tracking_number}"

        events.append(NotificationEvent(
            sample_id=sample.id,
            status=status,
            kind=NotificationType.SAMPLE_SHIPPED if shipped else NotificationType.SAMPLE_DELIVERED,
            title="Sample Shipped" if shipped else "Sample Delivered",
            message=message,
            recipient=NotificationRecipient(
                user_id=brand.user_id or brand.id, email=brand.email, role="brand"),
            details=dict(details, tracking_number=entry.tracking_number if entry else None),
            email_subject=f"Your sample has been {_label(status)}",
            email_context=SampleEmailContext(
                headline="Sample Shipped" if shipped else "Sample Delivered",
                intro=message,
                brand_name=brand_name,
                factory_name=factory_name,
                sample_id=str(sample.id),
                rows=_entry_rows(status, entry),
                link_path="/brand/tabs/samples",
                action_required=False,
            ),
        ))

    return events


def _entry_rows(status: SampleStatus, entry: Optional[SampleStatusHistory]) -> Dict[str, Any]:
    rows: Dict[str, Any] = {"Status": _label(status)}
    if entry is None:
        return rows
    if entry.eta:
        rows["ETA"] = entry.eta.isoformat()
    if entry.tracking_number:
        rows["Tracking"] = entry.tracking_number
    if entry.notes:
        rows["Notes"] = entry.notes
    return rows


# ==========================================================================
# DISPATCH
# ==========================================================================

class NotificationDispatcher:
    """
    Fans one event out over in-app, push and email.

    Database work (in-app insert, token lookup) runs in worker threads with
    short-lived sessions of its own, so a slow channel only delays itself.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        push: Optional[PushTransport] = None,
        email: Optional[EmailTransport] = None,
    ):
        self.session_factory = session_factory or (lambda: Session(engine))
        self.push = push or get_push_transport()
        self.email = email or get_email_transport()
        # Channel tasks the caller stopped waiting for
        self._in_flight: set = set()

    async def dispatch(self, event: NotificationEvent,
                       timeout: Optional[float] = None) -> DispatchReport:
        """
        Runs all three channels concurrently and reports each one.

        With a timeout, unfinished channels are reported as 'pending' and left
        to complete in the background rather than cancelled.
        """
        try:
            channels = {
                "in_app": asyncio.ensure_future(
                    self._attempt("in_app", event, self._deliver_in_app)),
                "push": asyncio.ensure_future(
                    self._attempt("push", event, self._deliver_push)),
                "email": asyncio.ensure_future(
                    self._attempt("email", event, self._deliver_email)),
            }

            done, pending = await asyncio.wait(channels.values(), timeout=timeout)

            results = {}
            for name, task in channels.items():
                if task in done:
                    results[name] = task.result()
                else:
                    results[name] = ChannelResult(
                        status=ChannelStatus.PENDING, detail="still in flight")
                    self._in_flight.add(task)
                    task.add_done_callback(self._in_flight.discard)

            report = DispatchReport(
                event_id=event.id,
                sample_id=event.sample_id,
                recipient_user_id=event.recipient.user_id,
                **results,
            )
        except Exception as e:
            logger.exception(f"Dispatch of event {event.id} failed unexpectedly")
            failed = ChannelResult(status=ChannelStatus.FAILED, detail=str(e))
            report = DispatchReport(
                event_id=event.id,
                sample_id=event.sample_id,
                recipient_user_id=event.recipient.user_id,
                in_app=failed, push=failed, email=failed,
            )

        logger.info(
            f"Dispatched {event.kind.value} for sample {event.sample_id} to "
            f"{event.recipient.role} {event.recipient.user_id}: in_app={report.in_app.status.value} "
            f"push={report.push.status.value} email={report.email.status.value}"
        )
        return report

    async def _attempt(self, channel: str, event: NotificationEvent, deliver) -> ChannelResult:
        try:
            return await deliver(event)
        except TransportNotConfigured as e:
            logger.warning(f"{channel} skipped for event {event.id}: {e}")
            return ChannelResult(status=ChannelStatus.SKIPPED, detail=str(e))
        except Exception as e:
            logger.error(f"{channel} delivery failed for event {event.id}: {e}")
            return ChannelResult(status=ChannelStatus.FAILED, detail=str(e))

    # --- In-app ---

    async def _deliver_in_app(self, event: NotificationEvent) -> ChannelResult:
        if event.recipient.user_id is None:
            return ChannelResult(status=ChannelStatus.SKIPPED, detail="recipient has no user id")

        await asyncio.to_thread(self._write_in_app, event)
        return ChannelResult(status=ChannelStatus.SENT)

    def _write_in_app(self, event: NotificationEvent) -> None:
        with self.session_factory() as session:
            session.add(Notification(
                user_id=event.recipient.user_id,
                title=event.title,
                message=event.message,
                type=event.kind,
                details=dict(event.details, event_id=str(event.id)),
            ))
            session.commit()

    # --- Push ---

    async def _deliver_push(self, event: NotificationEvent) -> ChannelResult:
        tokens = event.recipient.push_tokens
        if tokens is None and event.recipient.user_id is not None:
            tokens = await asyncio.to_thread(self._load_tokens, event.recipient.user_id)

        if not tokens:
            return ChannelResult(status=ChannelStatus.SKIPPED, detail="no registered device tokens")

        await self.push.send(tokens, PushMessage(
            title=event.title,
            body=event.message,
            data={"type": event.kind.value, "sample_id": str(event.sample_id)},
        ))
        return ChannelResult(status=ChannelStatus.SENT, detail=f"{len(tokens)} device(s)")

    def _load_tokens(self, user_id: uuid.UUID) -> List[str]:
        with self.session_factory() as session:
            return list(session.exec(
                select(PushToken.token).where(PushToken.user_id == user_id)
            ).all())

    # --- Email ---

    async def _deliver_email(self, event: NotificationEvent) -> ChannelResult:
        if not event.recipient.email:
            return ChannelResult(status=ChannelStatus.SKIPPED, detail="no email address")

        if event.email_context is not None:
            body = render_sample_email(event.email_context)
        else:
            body = f"<p>{event.message}</p>"

        await self.email.send(EmailMessage(
            to=event.recipient.email,
            subject=event.email_subject or event.title,
            html=body,
        ))
        return ChannelResult(status=ChannelStatus.SENT)

    # --- Trigger surface ---

    async def dispatch_many(self, events: List[NotificationEvent],
                            timeout: Optional[float] = None) -> List[DispatchReport]:
        return list(await asyncio.gather(*(self.dispatch(e, timeout) for e in events)))

    async def dispatch_for_sample(self, sample_id: uuid.UUID,
                                  timeout: Optional[float] = None) -> List[DispatchReport]:
        """
        Re-runs the notification fan-out for a sample's current state.
        Used right after creation and for manual re-sends.
        """
        events = await asyncio.to_thread(self._events_for_sample, sample_id)
        if not events:
            logger.warning(f"No notification recipients for sample {sample_id}")
        return await self.dispatch_many(events, timeout)

    def _events_for_sample(self, sample_id: uuid.UUID) -> List[NotificationEvent]:
        with self.session_factory() as session:
            sample = session.get(SampleRequest, sample_id)
            if not sample:
                raise NotFound("Sample request", sample_id)

            entry = session.exec(
                select(SampleStatusHistory)
                .where(SampleStatusHistory.sample_id == sample_id)
                .order_by(SampleStatusHistory.sequence.desc())
            ).first()
            if entry is not None and entry.status != sample.status:
                entry = None

            return build_sample_events(session, sample, entry)


# ==========================================================================
# INBOX + DEVICE TOKENS
# ==========================================================================

class NotificationService:
    def __init__(self, session: Session):
        self.session = session

    def register_push_token(self, user_id: uuid.UUID, token: str,
                            platform: Optional[str] = None) -> PushToken:
        """Idempotent per (user, token)."""
        existing = self.session.exec(
            select(PushToken)
            .where(PushToken.user_id == user_id)
            .where(PushToken.token == token)
        ).first()
        if existing:
            return existing

        push_token = PushToken(user_id=user_id, token=token, platform=platform)
        self.session.add(push_token)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return self.session.exec(
                select(PushToken)
                .where(PushToken.user_id == user_id)
                .where(PushToken.token == token)
            ).one()

        self.session.refresh(push_token)
        logger.info(f"Registered push token for user {user_id}")
        return push_token

    def list_notifications(self, user_id: uuid.UUID, unread_only: bool = False) -> List[Notification]:
        statement = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            statement = statement.where(Notification.read == False)  # noqa: E712
        return list(self.session.exec(
            statement.order_by(Notification.created_at.desc())
        ).all())

    def mark_read(self, notification_id: uuid.UUID) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification:
            raise NotFound("Notification", notification_id)

        notification.read = True
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification
