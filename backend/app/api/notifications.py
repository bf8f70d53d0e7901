"""
Notification API: queue email / WhatsApp sends and poll their delivery status.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.auth import STAFF_ROLES, CurrentUser, require_roles
from app.core.dependencies import get_notification_queue
from app.models.notification import (
    EmailPayload,
    NotificationDraft,
    NotificationPriority,
    WhatsAppPayload,
)
from app.schemas.notifications import (
    BulkEnqueuedResponse,
    BulkNotificationRequest,
    EmailNotificationRequest,
    EnqueuedResponse,
    NotificationStatusOut,
    NotificationStatusResponse,
    QueueStatsOut,
    QueueStatsResponse,
    SampleNotificationRequest,
    WhatsAppNotificationRequest,
)
from app.services.notification_queue import NotificationNotFoundError, NotificationQueue

logger = logging.getLogger(__name__)

router = APIRouter()

SAMPLE_WHATSAPP_MESSAGE = "Hello from Gentle Space Realty! This is a test message."


@router.post("/notifications/email", response_model=EnqueuedResponse)
async def send_email_notification(
    body: EmailNotificationRequest,
    current_user: CurrentUser = Depends(require_roles(*STAFF_ROLES)),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    notification_id = queue.enqueue(body.to_draft())
    return EnqueuedResponse(notification_id=notification_id)


@router.post("/notifications/whatsapp", response_model=EnqueuedResponse)
async def send_whatsapp_notification(
    body: WhatsAppNotificationRequest,
    current_user: CurrentUser = Depends(require_roles(*STAFF_ROLES)),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    notification_id = queue.enqueue(body.to_draft())
    return EnqueuedResponse(notification_id=notification_id)


@router.post("/notifications/bulk", response_model=BulkEnqueuedResponse)
async def send_bulk_notifications(
    body: BulkNotificationRequest,
    current_user: CurrentUser = Depends(require_roles(*STAFF_ROLES)),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    drafts = [item.to_draft() for item in body.notifications]
    notification_ids = queue.send_bulk(drafts, body.priority)
    logger.info("Bulk notifications queued: count=%s by=%s", len(notification_ids), current_user.id)
    return BulkEnqueuedResponse(notification_ids=notification_ids)


@router.post("/notifications/test", response_model=EnqueuedResponse)
async def send_test_notification(
    body: SampleNotificationRequest,
    current_user: CurrentUser = Depends(require_roles(*STAFF_ROLES)),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    if body.channel == "email":
        payload = EmailPayload(
            to=body.to,
            subject="Test notification from Gentle Space Realty",
            template="welcomeEmail",
            data={"name": "Test User"},
        )
    else:
        payload = WhatsAppPayload(to=body.to, message=SAMPLE_WHATSAPP_MESSAGE)
    notification_id = queue.enqueue_priority(NotificationDraft(payload=payload), NotificationPriority.HIGH)
    return EnqueuedResponse(notification_id=notification_id)


@router.get("/notifications/status/{notification_id}", response_model=NotificationStatusResponse)
async def get_notification_status(
    notification_id: str,
    current_user: CurrentUser = Depends(require_roles(*STAFF_ROLES)),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    try:
        status = queue.get_status(notification_id)
    except NotificationNotFoundError:
        raise HTTPException(404, "Notification not found")
    return NotificationStatusResponse(status=NotificationStatusOut.from_status(status))


@router.get("/notifications/queue/stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    current_user: CurrentUser = Depends(require_roles(*STAFF_ROLES)),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    return QueueStatsResponse(stats=QueueStatsOut.from_stats(queue.get_queue_stats()))
