from typing import Optional
from uuid import UUID
from datetime import date
from pydantic import FiniteFloat
from sqlmodel import SQLModel, Field

from app.db.schema import PaymentStatus


class InvoiceCreate(SQLModel):
    """
    Payload the rep submits to invoice a sample.
    Amount and due date are validated by the lifecycle, not here, so that a
    zero amount or past date is reported as MISSING_REQUIRED_FIELD. Only
    NaN and infinity are refused at the schema.
    """
    amount: FiniteFloat
    due_date: date
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notes: Optional[str] = None


class PaymentIntentRef(SQLModel):
    """Processor handle returned by the payment gate."""
    intent_id: str
    client_secret: Optional[str] = None
    payment_id: UUID
    amount: float
    currency: str
    due_date: Optional[date] = None


class PaymentSheet(SQLModel):
    """What the client needs to present the payment UI."""
    sample_id: UUID
    payment_id: UUID
    intent_id: str
    client_secret: str
    amount: float
    currency: str
    due_date: Optional[date] = None
    status: PaymentStatus
