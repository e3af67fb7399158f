from typing import List, Optional, Union
from uuid import UUID
from datetime import date, datetime
from pydantic import FiniteFloat
from sqlmodel import SQLModel, Field

from app.db.schema import PaymentType, SampleStatus


class TransitionFields(SQLModel):
    """
    Optional data carried by a transition.
    `eta` is kept raw so malformed input reaches the ledger and fails there
    with INVALID_FORMAT instead of a generic validation error.
    """
    notes: Optional[str] = None
    eta: Optional[Union[date, datetime, str]] = None
    tracking_number: Optional[str] = None

    # Invoice fields (only read for 'invoice_sent')
    payment_intent_id: Optional[str] = None
    amount: Optional[FiniteFloat] = None
    currency: Optional[str] = None
    due_date: Optional[date] = None
    payment_type: PaymentType = PaymentType.DEPOSIT


class TransitionRequest(TransitionFields):
    status: SampleStatus


class StatusHistoryRead(SQLModel):
    """
    One ledger entry. The synthetic leading 'requested' entry has no id
    and sequence 0.
    """
    id: Optional[UUID] = None
    sample_id: UUID
    sequence: int = 0
    status: SampleStatus
    notes: Optional[str] = None
    eta: Optional[date] = None
    tracking_number: Optional[str] = None
    payment_intent_id: Optional[str] = None
    created_at: datetime
    synthetic: bool = False


class TimelineStage(SQLModel):
    status: SampleStatus
    completed: bool
    entry: Optional[StatusHistoryRead] = None


class TimelineRead(SQLModel):
    sample_id: UUID
    current_status: SampleStatus
    has_updates: bool = Field(
        description="False while the only entry is the synthetic 'requested' one.")
    stages: List[TimelineStage]
    review: List[TimelineStage] = []
