from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class NotificationChannel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        # Lower rank is dispatched first.
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.URGENT: 0,
    NotificationPriority.HIGH: 1,
    NotificationPriority.NORMAL: 2,
    NotificationPriority.LOW: 3,
}


class NotificationState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    RETRY_SCHEDULED = "retry_scheduled"

    @property
    def is_terminal(self) -> bool:
        return self in (NotificationState.SENT, NotificationState.FAILED)


@dataclass(frozen=True)
class EmailPayload:
    to: str
    subject: str
    template: str
    data: dict[str, Any] = field(default_factory=dict)

    channel = NotificationChannel.EMAIL


@dataclass(frozen=True)
class WhatsAppPayload:
    to: str
    message: str
    type: str = "text"

    channel = NotificationChannel.WHATSAPP


NotificationPayload = Union[EmailPayload, WhatsAppPayload]


@dataclass(frozen=True)
class NotificationDraft:
    """What a caller hands to the queue: everything except id and timestamps."""

    payload: NotificationPayload
    priority: NotificationPriority = NotificationPriority.NORMAL

    @property
    def channel(self) -> NotificationChannel:
        return self.payload.channel


@dataclass(frozen=True)
class NotificationRequest:
    id: str
    payload: NotificationPayload
    priority: NotificationPriority
    created_at: datetime

    @property
    def channel(self) -> NotificationChannel:
        return self.payload.channel


@dataclass
class NotificationStatus:
    id: str
    created_at: datetime
    state: NotificationState = NotificationState.QUEUED
    attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class QueueStats:
    total: int
    queued: int
    processing: bool
    statuses: dict[str, int]
