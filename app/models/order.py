from typing import Optional
from uuid import UUID
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.db.schema import OrderStatus


class OrderPromote(SQLModel):
    """
    Payload for promoting an approved sample.
    Quantity falls back to the sample's preferred MOQ when omitted.
    """
    quantity: Optional[int] = Field(default=None, gt=0)


class OrderRead(SQLModel):
    id: UUID
    sample_id: UUID
    brand_id: UUID
    factory_id: UUID
    rep_id: Optional[UUID] = None
    quantity: int
    status: OrderStatus
    created_at: datetime
