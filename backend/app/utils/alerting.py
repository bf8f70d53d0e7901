import logging
import time
from collections import deque
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 3600
DEFAULT_THRESHOLDS = {
    "NOTIFICATION_FAILED": 5,
    "EMAIL_SEND_FAILED": 10,
    "WHATSAPP_SEND_FAILED": 10,
    "RATE_LIMIT_BLOCKED": 20,
}


class DeliveryAlertTracker:
    """Counts operational events in a sliding window and logs an ALERT line
    each time a threshold (or a multiple of it) is crossed."""

    def __init__(self, window_seconds: int, thresholds: dict[str, int]) -> None:
        self._window_seconds = window_seconds
        self._thresholds = dict(thresholds)
        self._events: dict[str, deque[float]] = {}
        self._lock = Lock()

    def set_threshold(self, action: str, limit: int) -> None:
        with self._lock:
            if limit <= 0:
                self._thresholds.pop(action, None)
            else:
                self._thresholds[action] = limit

    def count(self, action: str) -> int:
        with self._lock:
            events = self._events.get(action)
            if not events:
                return 0
            self._expire(events, time.monotonic())
            return len(events)

    def record(self, action: str, metadata: Optional[dict] = None) -> bool:
        """Returns True when this event raised an alert."""
        limit = self._thresholds.get(action)
        if not limit:
            return False
        now = time.monotonic()
        with self._lock:
            events = self._events.setdefault(action, deque())
            self._expire(events, now)
            events.append(now)
            fired = len(events) % limit == 0
        if fired:
            logger.warning(
                "ALERT action=%s count=%s window_seconds=%s metadata=%s",
                action,
                len(events),
                self._window_seconds,
                metadata or {},
            )
        return fired

    def _expire(self, events: deque, now: float) -> None:
        cutoff = now - self._window_seconds
        while events and events[0] <= cutoff:
            events.popleft()

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


alert_tracker = DeliveryAlertTracker(DEFAULT_WINDOW_SECONDS, DEFAULT_THRESHOLDS)
