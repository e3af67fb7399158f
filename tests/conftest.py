import os
import tempfile
import uuid
from datetime import date, timedelta

# Settings are read at import time: point them at a throwaway database first
_DB_DIR = tempfile.mkdtemp(prefix="samples-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["LOG_FILE"] = ""
os.environ["PAYMENT_PROCESSOR"] = "mock"
os.environ["FCM_SERVER_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from app.core.dependencies import get_dispatcher, get_payment_gate
from app.db import schema  # noqa: F401
from app.db.core import engine, get_session
from app.db.schema import Brand, Factory, Rep, SampleStatus
from app.integrations.payment_processor import MockProcessor
from app.main import app
from app.models.sample import SampleCreate
from app.services.lifecycle import SampleLifecycleService
from app.services.notifications import NotificationDispatcher
from app.services.payment import PaymentGate


class RecordingPush:
    def __init__(self):
        self.sent = []

    async def send(self, tokens, message):
        self.sent.append((list(tokens), message))


class RecordingEmail:
    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(message)


# ---------------------------
# Database
# ---------------------------

@pytest.fixture(autouse=True)
def reset_db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


# ---------------------------
# Seed rows
# ---------------------------

@pytest.fixture
def rep(session: Session) -> Rep:
    r = Rep(name="Sara Khan", email="sara@maryadha.com", user_id=uuid.uuid4())
    session.add(r)
    session.commit()
    session.refresh(r)
    return r


@pytest.fixture
def brand(session: Session) -> Brand:
    b = Brand(name="Acme Clothing Co.", email="buying@acme.com", user_id=uuid.uuid4())
    session.add(b)
    session.commit()
    session.refresh(b)
    return b


@pytest.fixture
def factory(session: Session, rep: Rep) -> Factory:
    f = Factory(name="Sialkot Leather Works", location="Sialkot, PK",
                minimum_order_quantity=100, rep_id=rep.id)
    session.add(f)
    session.commit()
    session.refresh(f)
    return f


# ---------------------------
# Collaborators
# ---------------------------

@pytest.fixture
def processor() -> MockProcessor:
    return MockProcessor()


@pytest.fixture
def push() -> RecordingPush:
    return RecordingPush()


@pytest.fixture
def email() -> RecordingEmail:
    return RecordingEmail()


@pytest.fixture
def dispatcher(push, email) -> NotificationDispatcher:
    return NotificationDispatcher(push=push, email=email)


@pytest.fixture
def gate(session, processor) -> PaymentGate:
    return PaymentGate(session, processor=processor)


@pytest.fixture
def service(session, gate, dispatcher) -> SampleLifecycleService:
    return SampleLifecycleService(session, payment_gate=gate, dispatcher=dispatcher)


@pytest.fixture
def make_sample(service, brand, factory):
    def _make(**overrides):
        data = {
            "brand_id": brand.id,
            "factory_id": factory.id,
            "product_name": "Tote bag, full grain",
            "quantity": 2,
            "preferred_moq": 100,
            "comments": "Natural edge paint please",
        }
        data.update(overrides)
        return service.create_sample(SampleCreate(**data))

    return _make


@pytest.fixture
def approved_sample(service, make_sample):
    sample = make_sample()
    service.transition(sample.id, SampleStatus.IN_REVIEW)
    service.transition(sample.id, SampleStatus.APPROVED)
    return service.get_sample(sample.id)


# ---------------------------
# Client
# ---------------------------

@pytest.fixture
def client(processor, dispatcher):
    def _gate(session: Session = Depends(get_session)) -> PaymentGate:
        return PaymentGate(session, processor=processor)

    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_payment_gate] = _gate
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
