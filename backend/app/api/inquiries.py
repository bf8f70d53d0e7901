from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.core.config import get_settings
from app.core.dependencies import get_notification_queue
from app.schemas.notifications import BulkEnqueuedResponse, InquiryNotificationRequest
from app.services.inquiry_notifications import notify_new_inquiry
from app.services.notification_queue import NotificationQueue
from app.utils.rate_limit import enforce_rate_limit

router = APIRouter()


@router.post("/inquiries/notify", response_model=BulkEnqueuedResponse)
async def notify_inquiry_submitted(
    body: InquiryNotificationRequest,
    request: Request,
    queue: NotificationQueue = Depends(get_notification_queue),
):
    """Public hook called after the contact form stored an inquiry."""
    settings = get_settings()
    enforce_rate_limit(request, scope="inquiry", limit=settings.rate_limit_inquiry_per_min)
    notification_ids = notify_new_inquiry(queue, body.model_dump(mode="json"), settings)
    return BulkEnqueuedResponse(notification_ids=notification_ids)
