import asyncio
import json
import uuid

import httpx
import pytest
from sqlmodel import Session, select

from app.db.core import engine
from app.db.schema import Notification, NotificationType, PushToken, Rep, SampleStatus
from app.integrations.base import DeliveryError, TransportNotConfigured
from app.integrations.mailer import (
    EmailMessage, ResendEmailTransport, SampleEmailContext, render_sample_email
)
from app.integrations.push import FcmPushTransport, PushMessage
from app.models.notification import ChannelStatus
from app.models.status_history import TransitionFields
from app.services.notifications import (
    NotificationDispatcher, NotificationEvent, NotificationRecipient,
    NotificationService, build_sample_events
)


def _event(user_id=None, email=None, tokens=None):
    return NotificationEvent(
        sample_id=uuid.uuid4(),
        status=SampleStatus.IN_PRODUCTION,
        kind=NotificationType.SAMPLE_STATUS,
        title="Sample Status Updated",
        message="Tote bag for Acme is now in production",
        recipient=NotificationRecipient(user_id=user_id, email=email, push_tokens=tokens),
    )


class SlowPush:
    async def send(self, tokens, message):
        await asyncio.sleep(5)


class BrokenPush:
    async def send(self, tokens, message):
        raise RuntimeError("fcm exploded")


# ---------------------------
# Routing
# ---------------------------

def test_new_request_goes_to_rep(session, make_sample, rep):
    sample = make_sample()
    events = build_sample_events(session, sample)

    assert len(events) == 1
    event = events[0]
    assert event.kind == NotificationType.SAMPLE_REQUEST
    assert event.title == "New Sample Request"
    assert event.message == "Acme Clothing Co. has requested a sample from Sialkot Leather Works"
    assert event.recipient.user_id == rep.user_id
    assert event.recipient.email == rep.email


def test_shipped_also_notifies_brand(session, service, make_sample, brand, rep):
    sample = make_sample()
    entry = service.transition(sample.id, SampleStatus.SHIPPED,
                               TransitionFields(tracking_number="1Z999"))

    events = build_sample_events(session, service.get_sample(sample.id), entry)
    recipients = {e.recipient.role: e for e in events}

    assert set(recipients) == {"rep", "brand"}
    assert recipients["rep"].recipient.user_id == rep.user_id
    to_brand = recipients["brand"]
    assert to_brand.recipient.user_id == brand.user_id
    assert to_brand.kind == NotificationType.SAMPLE_SHIPPED
    assert "Tracking: 1Z999" in to_brand.message


def test_sample_without_rep_notifies_nobody_on_pipeline_moves(session, make_sample):
    sample = make_sample()
    sample.rep_id = None
    session.add(sample)
    session.commit()

    assert build_sample_events(session, sample) == []


# ---------------------------
# Dispatch
# ---------------------------

def test_user_without_tokens_or_email(dispatcher, push, email):
    user_id = uuid.uuid4()
    report = asyncio.run(dispatcher.dispatch(_event(user_id=user_id)))

    assert report.in_app.status == ChannelStatus.SENT
    assert report.push.status == ChannelStatus.SKIPPED
    assert report.email.status == ChannelStatus.SKIPPED
    assert push.sent == [] and email.sent == []

    with Session(engine) as s:
        stored = s.exec(select(Notification).where(Notification.user_id == user_id)).one()
        assert stored.title == "Sample Status Updated"
        assert stored.read is False
        assert stored.details["event_id"] == str(report.event_id)


def test_registered_tokens_are_looked_up(session, dispatcher, push):
    user_id = uuid.uuid4()
    NotificationService(session).register_push_token(user_id, "device-1", "ios")

    report = asyncio.run(dispatcher.dispatch(_event(user_id=user_id)))

    assert report.push.status == ChannelStatus.SENT
    tokens, message = push.sent[0]
    assert tokens == ["device-1"]
    assert message.data["type"] == "sample_status"


def test_one_failing_channel_does_not_affect_the_others(email):
    dispatcher = NotificationDispatcher(push=BrokenPush(), email=email)
    user_id = uuid.uuid4()

    report = asyncio.run(dispatcher.dispatch(
        _event(user_id=user_id, email="sara@maryadha.com", tokens=["device-1"])))

    assert report.push.status == ChannelStatus.FAILED
    assert "fcm exploded" in report.push.detail
    assert report.email.status == ChannelStatus.SENT
    assert report.in_app.status == ChannelStatus.SENT
    assert email.sent[0].to == "sara@maryadha.com"


def test_unconfigured_transport_is_skipped():
    dispatcher = NotificationDispatcher(
        push=FcmPushTransport(""), email=ResendEmailTransport(""))

    report = asyncio.run(dispatcher.dispatch(
        _event(email="sara@maryadha.com", tokens=["device-1"])))

    assert report.in_app.status == ChannelStatus.SKIPPED
    assert report.push.status == ChannelStatus.SKIPPED
    assert report.email.status == ChannelStatus.SKIPPED


def test_slow_channel_is_reported_pending(email):
    dispatcher = NotificationDispatcher(push=SlowPush(), email=email)

    report = asyncio.run(dispatcher.dispatch(_event(tokens=["device-1"]), timeout=0.05))

    assert report.push.status == ChannelStatus.PENDING
    assert report.email.status == ChannelStatus.SKIPPED
    assert report.in_app.status == ChannelStatus.SKIPPED


def test_dispatch_for_sample(session, dispatcher, make_sample, rep):
    sample = make_sample()

    reports = asyncio.run(dispatcher.dispatch_for_sample(sample.id))

    assert len(reports) == 1
    assert reports[0].recipient_user_id == rep.user_id
    assert reports[0].in_app.status == ChannelStatus.SENT
    assert reports[0].email.status == ChannelStatus.SENT


def test_redispatch_is_not_deduplicated(dispatcher, make_sample, rep):
    sample = make_sample()

    asyncio.run(dispatcher.dispatch_for_sample(sample.id))
    asyncio.run(dispatcher.dispatch_for_sample(sample.id))

    with Session(engine) as s:
        assert len(s.exec(select(Notification).where(Notification.user_id == rep.user_id)).all()) == 2


# ---------------------------
# Inbox + tokens
# ---------------------------

def test_token_registration_is_idempotent(session):
    svc = NotificationService(session)
    user_id = uuid.uuid4()

    first = svc.register_push_token(user_id, "device-1")
    second = svc.register_push_token(user_id, "device-1")

    assert first.id == second.id
    assert len(session.exec(select(PushToken)).all()) == 1


def test_inbox_unread_filter(session):
    svc = NotificationService(session)
    user_id = uuid.uuid4()
    for title in ("one", "two"):
        session.add(Notification(user_id=user_id, title=title, message=title))
    session.commit()

    first = svc.list_notifications(user_id)[0]
    svc.mark_read(first.id)

    assert len(svc.list_notifications(user_id)) == 2
    assert len(svc.list_notifications(user_id, unread_only=True)) == 1


# ---------------------------
# Transports
# ---------------------------

def test_fcm_transport_posts_batch():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": 2})

    transport = FcmPushTransport(
        "server-key", url="https://fcm.test/send",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    asyncio.run(transport.send(["a", "b"], PushMessage(title="Hi", body="There", data={"k": "v"})))

    request = seen[0]
    assert request.headers["Authorization"] == "key=server-key"
    body = json.loads(request.content)
    assert body["registration_ids"] == ["a", "b"]
    assert body["notification"] == {"title": "Hi", "body": "There"}
    assert body["data"] == {"k": "v"}


def test_fcm_rejection_raises():
    transport = FcmPushTransport(
        "server-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(401, text="unauthorized"))))

    with pytest.raises(DeliveryError):
        asyncio.run(transport.send(["a"], PushMessage(title="Hi", body="There")))


def test_fcm_without_key():
    with pytest.raises(TransportNotConfigured):
        asyncio.run(FcmPushTransport("").send(["a"], PushMessage(title="Hi", body="There")))


def test_resend_transport():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "email_1"})

    transport = ResendEmailTransport(
        "re_key", url="https://resend.test/emails", default_sender="Maryadha <n@maryadha.com>",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    asyncio.run(transport.send(EmailMessage(to="sara@maryadha.com", subject="Hi", html="<p>x</p>")))

    body = json.loads(seen[0].content)
    assert seen[0].headers["Authorization"] == "Bearer re_key"
    assert body["from"] == "Maryadha <n@maryadha.com>"
    assert body["to"] == ["sara@maryadha.com"]


def test_render_sample_email_escapes_and_fills_blanks():
    html = render_sample_email(SampleEmailContext(
        headline="New Sample Request",
        intro="A brand has submitted a new sample request for your factory",
        brand_name="<Acme>",
        factory_name="Sialkot Leather Works",
        sample_id="abc",
        rows={"Product Name": "Tote", "Comments": None},
    ), app_url="https://app.test/")

    assert "&lt;Acme&gt;" in html
    assert "<Acme>" not in html
    assert "Not specified" in html
    assert "Action Required" in html
    assert "https://app.test/rep/tabs/samples" in html


def test_inactive_rep_still_receives_notifications(session, make_sample, rep):
    sample = make_sample()
    rep = session.get(Rep, rep.id)
    rep.active = False
    session.add(rep)
    session.commit()

    events = build_sample_events(session, sample)
    assert [e.recipient.user_id for e in events] == [rep.user_id]
