from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from app.core.config import get_settings
from app.services.notification_queue import NotificationQueue

logger = logging.getLogger(__name__)


def purge_expired_notifications(queue: NotificationQueue) -> int:
    settings = get_settings()
    retention = timedelta(seconds=max(60, int(settings.notification_retention_seconds)))
    return queue.purge_completed(retention)


async def _notification_retention_loop(queue: NotificationQueue, *, interval_seconds: int) -> None:
    # Backoff on errors to avoid tight loops.
    error_sleep = max(10, min(60, interval_seconds))
    while True:
        try:
            settings = get_settings()
            if settings.enable_recurring_jobs:
                purge_expired_notifications(queue)
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Notification retention worker error")
            await asyncio.sleep(error_sleep)


def start_notification_retention_worker(queue: NotificationQueue) -> asyncio.Task:
    """
    Starts the in-process retention loop. Callers keep the returned task and
    cancel it on shutdown.
    """
    settings = get_settings()
    interval = int(max(30, min(3600, int(settings.notification_retention_interval_seconds or 300))))
    return asyncio.create_task(_notification_retention_loop(queue, interval_seconds=interval))
