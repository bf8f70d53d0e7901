from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.core.config import get_settings
from app.models.notification import (
    EmailPayload,
    NotificationDraft,
    NotificationPriority,
    NotificationStatus,
    QueueStats,
    WhatsAppPayload,
)
from app.services.notification_channels import PermanentDeliveryError, normalize_whatsapp_number

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
# Digits plus the usual separators; normalisation decides whether the number is usable.
PHONE_CHARS_RE = re.compile(r"^(whatsapp:)?[\d\s\-().+]+$")


def validate_email_address(value: str) -> str:
    value = (value or "").strip()
    if not EMAIL_RE.match(value):
        raise ValueError("Invalid email address")
    return value


def validate_phone_number(value: str) -> str:
    """Return the number in the +<digits> form the WhatsApp transport sends to."""
    value = (value or "").strip()
    if not PHONE_CHARS_RE.match(value):
        raise ValueError("Invalid phone number")
    try:
        return normalize_whatsapp_number(value, default_country_code=get_settings().whatsapp_default_country_code)
    except PermanentDeliveryError:
        raise ValueError("Invalid phone number") from None


# ── Requests ─────────────────────────────────────────────────


class EmailNotificationRequest(BaseModel):
    to: str
    subject: str = Field(default="", max_length=200)
    template: str = Field(min_length=1, max_length=100)
    data: dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL

    @field_validator("to")
    @classmethod
    def _check_to(cls, value: str) -> str:
        return validate_email_address(value)

    def to_draft(self) -> NotificationDraft:
        payload = EmailPayload(to=self.to, subject=self.subject, template=self.template, data=dict(self.data))
        return NotificationDraft(payload=payload, priority=self.priority)


class WhatsAppNotificationRequest(BaseModel):
    to: str
    message: str = Field(min_length=1, max_length=4096)
    type: str = Field(default="text", max_length=32)
    priority: NotificationPriority = NotificationPriority.NORMAL

    @field_validator("to")
    @classmethod
    def _check_to(cls, value: str) -> str:
        return validate_phone_number(value)

    def to_draft(self) -> NotificationDraft:
        payload = WhatsAppPayload(to=self.to, message=self.message, type=self.type)
        return NotificationDraft(payload=payload, priority=self.priority)


class BulkEmailItem(EmailNotificationRequest):
    channel: Literal["email"]


class BulkWhatsAppItem(WhatsAppNotificationRequest):
    channel: Literal["whatsapp"]


BulkItem = Annotated[Union[BulkEmailItem, BulkWhatsAppItem], Field(discriminator="channel")]


class BulkNotificationRequest(BaseModel):
    notifications: list[BulkItem] = Field(min_length=1, max_length=500)
    priority: Optional[NotificationPriority] = None


class SampleNotificationRequest(BaseModel):
    channel: Literal["email", "whatsapp"]
    to: str

    @model_validator(mode="after")
    def _check_recipient(self):
        if self.channel == "email":
            self.to = validate_email_address(self.to)
        else:
            self.to = validate_phone_number(self.to)
        return self


class InquiryNotificationRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: str
    message: str = Field(min_length=10, max_length=1000)
    phone: Optional[str] = None
    company: Optional[str] = Field(default=None, max_length=100)
    property_id: Optional[UUID] = None
    property_title: Optional[str] = Field(default=None, max_length=200)
    inquiry_type: Literal["general", "property", "viewing", "investment"] = "general"

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        return validate_email_address(value)

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return validate_phone_number(value)


# ── Responses ────────────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnqueuedResponse(_CamelModel):
    success: bool = True
    notification_id: str
    status: str = "queued"


class BulkEnqueuedResponse(_CamelModel):
    success: bool = True
    notification_ids: list[str]


class NotificationStatusOut(_CamelModel):
    id: str
    status: str
    attempts: int
    created_at: datetime
    last_attempt: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def from_status(cls, status: NotificationStatus) -> "NotificationStatusOut":
        return cls(
            id=status.id,
            status=status.state.value,
            attempts=status.attempts,
            created_at=status.created_at,
            last_attempt=status.last_attempt_at,
            completed_at=status.completed_at,
            error=status.error,
        )


class NotificationStatusResponse(BaseModel):
    success: bool = True
    status: NotificationStatusOut


class QueueStatsOut(BaseModel):
    total: int
    queued: int
    processing: bool
    statuses: dict[str, int]

    @classmethod
    def from_stats(cls, stats: QueueStats) -> "QueueStatsOut":
        return cls(total=stats.total, queued=stats.queued, processing=stats.processing, statuses=dict(stats.statuses))


class QueueStatsResponse(BaseModel):
    success: bool = True
    stats: QueueStatsOut
