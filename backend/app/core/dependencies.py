from typing import Optional

from fastapi import HTTPException, Request

from app.core.config import Settings, get_settings
from app.services.notification_channels import build_transports
from app.services.notification_queue import NotificationQueue, RetryPolicy
from app.utils.alerting import alert_tracker


def build_notification_queue(settings: Optional[Settings] = None) -> NotificationQueue:
    settings = settings or get_settings()
    alert_tracker.set_threshold("NOTIFICATION_FAILED", settings.notification_failure_alert_threshold)
    policy = RetryPolicy(
        max_attempts=settings.notification_max_attempts,
        delays=tuple(settings.notification_retry_delays),
        short_circuit_permanent=settings.notification_short_circuit_permanent_errors,
    )
    return NotificationQueue(build_transports(settings), policy=policy, alerts=alert_tracker)


def get_notification_queue(request: Request) -> NotificationQueue:
    queue = getattr(request.app.state, "notification_queue", None)
    if queue is None:
        raise HTTPException(503, "Notification queue is not running")
    return queue
