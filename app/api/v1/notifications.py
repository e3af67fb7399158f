from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, status

from app.core.config import settings
from app.core.dependencies import get_dispatcher, get_notification_service
from app.models.notification import (
    NotificationRead, NotificationTrigger, PushTokenCreate, PushTokenRead,
    TriggerResponse
)
from app.services.notifications import NotificationDispatcher, NotificationService

router = APIRouter()


@router.post(
    "/sample-request",
    response_model=TriggerResponse,
    summary="Send Sample Notifications",
    description=(
        "Re-runs the notification fan-out for the sample's current status. "
        "Always answers with a per-channel report; delivery failures never fail the request."
    )
)
async def trigger_sample_notifications(
    payload: NotificationTrigger,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    reports = await dispatcher.dispatch_for_sample(
        payload.sample_id, timeout=settings.notification_timeout_seconds)
    return TriggerResponse(sample_id=payload.sample_id, reports=reports)


@router.post(
    "/push-tokens",
    status_code=status.HTTP_201_CREATED,
    response_model=PushTokenRead,
    summary="Register Device Token",
    description="Registers a push token for a user. Registering the same token twice is a no-op."
)
def register_push_token(
    payload: PushTokenCreate,
    service: NotificationService = Depends(get_notification_service)
):
    return service.register_push_token(payload.user_id, payload.token, payload.platform)


@router.get(
    "",
    response_model=List[NotificationRead],
    summary="List In-App Notifications",
)
def list_notifications(
    user_id: UUID,
    unread_only: bool = False,
    service: NotificationService = Depends(get_notification_service)
):
    return service.list_notifications(user_id, unread_only=unread_only)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationRead,
    summary="Mark Notification Read",
)
def mark_notification_read(
    notification_id: UUID,
    service: NotificationService = Depends(get_notification_service)
):
    return service.mark_read(notification_id)
