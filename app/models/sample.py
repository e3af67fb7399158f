from typing import List, Optional
from uuid import UUID
from datetime import date, datetime
from sqlmodel import SQLModel, Field

from app.db.schema import SampleStatus


class SampleCreate(SQLModel):
    """
    Payload a brand submits against a factory.
    The rep is never supplied by the client; it is assigned server-side.
    """
    brand_id: UUID
    factory_id: UUID
    product_name: Optional[str] = Field(default=None, max_length=200)
    quantity: Optional[int] = Field(default=None, gt=0)
    preferred_moq: Optional[int] = Field(default=None, gt=0)
    delivery_address: Optional[str] = None
    comments: Optional[str] = None
    finish_notes: Optional[str] = None
    file_url: Optional[str] = None
    reference_images: List[str] = Field(default_factory=list)


class SampleRead(SQLModel):
    id: UUID
    brand_id: UUID
    factory_id: UUID
    rep_id: Optional[UUID] = None
    status: SampleStatus
    product_name: Optional[str] = None
    quantity: Optional[int] = None
    preferred_moq: Optional[int] = None
    delivery_address: Optional[str] = None
    comments: Optional[str] = None
    finish_notes: Optional[str] = None
    file_url: Optional[str] = None
    reference_images: List[str] = []
    payment_intent_id: Optional[str] = None
    invoice_amount: Optional[float] = None
    invoice_currency: Optional[str] = None
    invoice_due_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime


class RepAssignment(SQLModel):
    """Payload for manually reassigning a sample to another rep."""
    rep_id: UUID
