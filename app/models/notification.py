from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlmodel import SQLModel, Field

from app.db.schema import NotificationType


class ChannelStatus(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"    # No-op: nothing to deliver to
    FAILED = "failed"
    PENDING = "pending"    # Caller stopped waiting; still in flight


class ChannelResult(SQLModel):
    status: ChannelStatus
    detail: Optional[str] = None


class DispatchReport(SQLModel):
    """
    Per-channel outcome of one notification event.
    Channels are independent: any combination of outcomes is possible.
    """
    event_id: UUID
    sample_id: Optional[UUID] = None
    recipient_user_id: Optional[UUID] = None
    in_app: ChannelResult
    push: ChannelResult
    email: ChannelResult


class NotificationTrigger(BaseModel):
    """Body of the HTTP trigger. Accepts `sampleId` or `sample_id`."""
    model_config = ConfigDict(populate_by_name=True)

    sample_id: UUID = PydanticField(alias="sampleId")


class PushTokenCreate(SQLModel):
    user_id: UUID
    token: str = Field(min_length=1)
    platform: Optional[str] = None


class PushTokenRead(SQLModel):
    id: UUID
    user_id: UUID
    token: str
    platform: Optional[str] = None


class NotificationRead(SQLModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    type: NotificationType
    details: Dict[str, Any] = {}
    read: bool
    created_at: datetime


class TriggerResponse(SQLModel):
    sample_id: UUID
    reports: List[DispatchReport]
