from __future__ import annotations

import logging
from typing import Any, Optional

from app.core.config import Settings, get_settings
from app.models.notification import (
    EmailPayload,
    NotificationDraft,
    NotificationPriority,
    WhatsAppPayload,
)
from app.services.email_templates import INQUIRY_TYPE_LABELS
from app.services.notification_queue import NotificationQueue

logger = logging.getLogger(__name__)


def _inquiry_data(inquiry: dict[str, Any]) -> dict[str, Any]:
    keys = ("name", "email", "phone", "company", "message", "inquiry_type", "property_id", "property_title")
    return {key: str(inquiry[key]) for key in keys if inquiry.get(key) is not None}


def build_inquiry_notifications(
    inquiry: dict[str, Any],
    settings: Optional[Settings] = None,
) -> list[NotificationDraft]:
    """Drafts for a freshly submitted inquiry: admin alert first, then the customer copy."""
    settings = settings or get_settings()
    data = _inquiry_data(inquiry)
    drafts: list[NotificationDraft] = []

    if settings.admin_notification_email:
        drafts.append(
            NotificationDraft(
                payload=EmailPayload(
                    to=settings.admin_notification_email,
                    subject="",
                    template="newInquiryAlert",
                    data=data,
                ),
                priority=NotificationPriority.HIGH,
            )
        )

    if settings.admin_whatsapp_number:
        label = INQUIRY_TYPE_LABELS.get(data.get("inquiry_type", "general"), "Inquiry")
        about = f" about {data['property_title']}" if data.get("property_title") else ""
        drafts.append(
            NotificationDraft(
                payload=WhatsAppPayload(
                    to=settings.admin_whatsapp_number,
                    message=f"{label}{about} from {data.get('name', 'a visitor')} ({data.get('email', '-')}).",
                ),
                priority=NotificationPriority.HIGH,
            )
        )

    if data.get("email"):
        drafts.append(
            NotificationDraft(
                payload=EmailPayload(
                    to=data["email"],
                    subject="",
                    template="inquiryConfirmation",
                    data=data,
                ),
            )
        )
    return drafts


def notify_new_inquiry(
    queue: NotificationQueue,
    inquiry: dict[str, Any],
    settings: Optional[Settings] = None,
) -> list[str]:
    """
    Queue every notification for a new inquiry and return their ids.

    Delivery problems surface only through the queue status API; the inquiry
    itself is already stored when this runs.
    """
    drafts = build_inquiry_notifications(inquiry, settings)
    if not drafts:
        logger.warning("Inquiry notifications skipped: no recipients configured")
        return []
    return queue.send_bulk(drafts)
