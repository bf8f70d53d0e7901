"""
In-process notification delivery queue (email + WhatsApp).

One pending list ordered by priority (FIFO inside a tier), one status record
per notification and a single drain task guarded by the ``processing`` flag.
Failed sends are re-inserted after a fixed backoff until the attempt cap is
reached. Callers never see transport errors; they poll ``get_status``.

All public methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from uuid import uuid4

from app.models.notification import (
    NotificationChannel,
    NotificationDraft,
    NotificationPriority,
    NotificationRequest,
    NotificationState,
    NotificationStatus,
    QueueStats,
)
from app.services.notification_channels import (
    DeliveryError,
    NotificationTransport,
    PermanentDeliveryError,
)
from app.utils.alerting import DeliveryAlertTracker, alert_tracker
from app.utils.pii import log_recipient

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS = (5.0, 15.0, 60.0)
DEFAULT_MAX_ATTEMPTS = 3


class NotificationNotFoundError(LookupError):
    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification not found: {notification_id}")
        self.notification_id = notification_id


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS
    short_circuit_permanent: bool = False

    def delay_for(self, attempts: int) -> float:
        # attempts is the number already made; the first retry uses delays[0].
        index = max(0, min(len(self.delays) - 1, attempts - 1))
        return float(self.delays[index])


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class NotificationQueue:
    def __init__(
        self,
        transports: Mapping[NotificationChannel, NotificationTransport],
        *,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _now_utc,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        alerts: Optional[DeliveryAlertTracker] = None,
    ) -> None:
        self._transports = dict(transports)
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep
        self._alerts = alerts if alerts is not None else alert_tracker

        self._pending: list[tuple[int, int, NotificationRequest]] = []
        self._sequence = itertools.count()
        self._requests: dict[str, NotificationRequest] = {}
        self._statuses: dict[str, NotificationStatus] = {}

        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._retry_tasks: set[asyncio.Task] = set()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def is_processing(self) -> bool:
        return self._processing

    # ── Submission ───────────────────────────────────────────

    def enqueue(self, draft: NotificationDraft) -> str:
        return self._submit(draft, draft.priority)

    def enqueue_priority(
        self,
        draft: NotificationDraft,
        level: Union[NotificationPriority, str],
    ) -> str:
        return self._submit(draft, NotificationPriority(level))

    def send_bulk(
        self,
        drafts: Iterable[NotificationDraft],
        priority: Union[NotificationPriority, str, None] = None,
    ) -> list[str]:
        """Enqueue each draft independently; there is no all-or-nothing."""
        if priority is None:
            return [self.enqueue(draft) for draft in drafts]
        return [self.enqueue_priority(draft, priority) for draft in drafts]

    def _submit(self, draft: NotificationDraft, priority: NotificationPriority) -> str:
        created_at = self._clock()
        notification_id = self._new_id(created_at)
        request = NotificationRequest(
            id=notification_id,
            payload=draft.payload,
            priority=priority,
            created_at=created_at,
        )
        self._requests[notification_id] = request
        self._statuses[notification_id] = NotificationStatus(id=notification_id, created_at=created_at)
        self._push(request)

        logger.info(
            "Notification queued id=%s channel=%s priority=%s to=%s",
            notification_id,
            request.channel.value,
            priority.value,
            log_recipient(request.payload.to, channel=request.channel.value),
        )
        self._start_processing()
        return notification_id

    def _new_id(self, created_at: datetime) -> str:
        stamp = int(created_at.timestamp() * 1000)
        while True:
            candidate = f"notif_{stamp}_{uuid4().hex[:9]}"
            if candidate not in self._statuses:
                return candidate

    def _push(self, request: NotificationRequest) -> None:
        heapq.heappush(self._pending, (request.priority.rank, next(self._sequence), request))

    # ── Reads ────────────────────────────────────────────────

    def get_status(self, notification_id: str) -> NotificationStatus:
        status = self._statuses.get(notification_id)
        if status is None:
            raise NotificationNotFoundError(notification_id)
        return replace(status)

    def get_request(self, notification_id: str) -> NotificationRequest:
        request = self._requests.get(notification_id)
        if request is None:
            raise NotificationNotFoundError(notification_id)
        return request

    def get_queue_stats(self) -> QueueStats:
        counts = {state.value: 0 for state in NotificationState}
        for status in self._statuses.values():
            counts[status.state.value] += 1
        return QueueStats(
            total=len(self._statuses),
            queued=len(self._pending),
            processing=self._processing,
            statuses=counts,
        )

    # ── Processing ───────────────────────────────────────────

    def _start_processing(self) -> None:
        if self._processing:
            return
        self._processing = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._pending:
                _, _, request = heapq.heappop(self._pending)
                try:
                    await self._attempt(request)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.exception("Notification processing error id=%s", request.id)
                    self._abort(request, exc)
        finally:
            self._processing = False
            self._drain_task = None

    async def _attempt(self, request: NotificationRequest) -> None:
        status = self._statuses[request.id]
        status.state = NotificationState.PROCESSING
        status.attempts += 1
        status.last_attempt_at = self._clock()

        try:
            transport = self._transports.get(request.channel)
            if transport is None:
                raise DeliveryError(f"No transport configured for channel {request.channel.value}")
            await transport.send(request.payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._handle_failure(request, status, exc)
            return

        status.state = NotificationState.SENT
        status.completed_at = self._clock()
        status.error = None
        logger.info(
            "Notification sent id=%s channel=%s attempts=%s",
            request.id,
            request.channel.value,
            status.attempts,
        )

    def _handle_failure(
        self,
        request: NotificationRequest,
        status: NotificationStatus,
        exc: Exception,
    ) -> None:
        status.error = str(exc) or exc.__class__.__name__
        self._alerts.record(
            f"{request.channel.value.upper()}_SEND_FAILED",
            {"id": request.id, "attempts": status.attempts},
        )
        permanent = self._policy.short_circuit_permanent and isinstance(exc, PermanentDeliveryError)

        if permanent or status.attempts >= self._policy.max_attempts:
            status.state = NotificationState.FAILED
            status.completed_at = self._clock()
            logger.error(
                "Notification failed id=%s channel=%s attempts=%s permanent=%s error=%s",
                request.id,
                request.channel.value,
                status.attempts,
                permanent,
                status.error,
            )
            self._alerts.record(
                "NOTIFICATION_FAILED",
                {"id": request.id, "channel": request.channel.value, "error": status.error},
            )
            return

        delay = self._policy.delay_for(status.attempts)
        status.state = NotificationState.RETRY_SCHEDULED
        logger.warning(
            "Notification attempt failed id=%s channel=%s attempts=%s retry_in=%ss error=%s",
            request.id,
            request.channel.value,
            status.attempts,
            delay,
            status.error,
        )
        task = asyncio.get_running_loop().create_task(self._requeue_after(request, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    def _abort(self, request: NotificationRequest, exc: Exception) -> None:
        """Fail an item whose bookkeeping raised outside the transport call."""
        status = self._statuses.get(request.id)
        if status is None or status.state.is_terminal:
            return
        status.state = NotificationState.FAILED
        status.error = status.error or str(exc) or exc.__class__.__name__
        try:
            status.completed_at = self._clock()
        except Exception:
            status.completed_at = _now_utc()

    async def _requeue_after(self, request: NotificationRequest, delay: float) -> None:
        await self._sleep(delay)
        self._push(request)
        self._start_processing()

    # ── Lifecycle ────────────────────────────────────────────

    def _outstanding_tasks(self) -> list[asyncio.Task]:
        tasks = [task for task in self._retry_tasks if not task.done()]
        if self._drain_task is not None and not self._drain_task.done():
            tasks.append(self._drain_task)
        return tasks

    async def join(self) -> None:
        """Wait until nothing is pending, draining or waiting on a retry timer."""
        while True:
            tasks = self._outstanding_tasks()
            if not tasks:
                return
            await asyncio.wait(tasks)

    async def shutdown(self, timeout: float = 10.0) -> int:
        """
        Give in-flight work up to ``timeout`` seconds, then cancel what is left.
        Returns the number of notifications that never reached a terminal state.
        """
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

        leftovers = self._outstanding_tasks()
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
        self._pending.clear()
        self._processing = False

        abandoned = sum(1 for status in self._statuses.values() if not status.state.is_terminal)
        if abandoned:
            logger.warning("Notification queue shut down with %s undelivered notifications", abandoned)
        return abandoned

    def purge_completed(self, older_than: timedelta) -> int:
        """Drop terminal statuses completed before ``now - older_than``."""
        cutoff = self._clock() - older_than
        expired = [
            notification_id
            for notification_id, status in self._statuses.items()
            if status.state.is_terminal and status.completed_at is not None and status.completed_at <= cutoff
        ]
        for notification_id in expired:
            del self._statuses[notification_id]
            self._requests.pop(notification_id, None)
        if expired:
            logger.info("Purged %s completed notifications", len(expired))
        return len(expired)
