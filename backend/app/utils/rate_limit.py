import ipaddress
import time
from collections import deque
from threading import Lock
from typing import Optional

from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.utils.alerting import alert_tracker

_MAX_BUCKETS = 50_000
_PRUNE_INTERVAL_SECONDS = 60


class SlidingWindowRateLimiter:
    def __init__(
        self,
        *,
        max_buckets: int = _MAX_BUCKETS,
        prune_interval_seconds: int = _PRUNE_INTERVAL_SECONDS,
    ) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._max_buckets = max_buckets
        self._prune_interval_seconds = max(1, int(prune_interval_seconds))
        self._last_prune_at = 0.0

    def allow(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Record a hit for ``key``; returns (allowed, hits in window)."""
        if limit <= 0 or window_seconds <= 0:
            return True, 0
        now = time.monotonic()
        cutoff = now - window_seconds
        with self._lock:
            if len(self._hits) > self._max_buckets or now - self._last_prune_at >= self._prune_interval_seconds:
                self._prune(cutoff)
                self._last_prune_at = now

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= limit:
                return False, len(hits)
            hits.append(now)
            return True, len(hits)

    def _prune(self, cutoff: float) -> None:
        # Called under lock.
        for key in list(self._hits):
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_prune_at = 0.0


rate_limiter = SlidingWindowRateLimiter()


def _ip_in_networks(ip: str, networks: list[str]) -> bool:
    try:
        ip_obj = ipaddress.ip_address(ip)
    except ValueError:
        return ip in networks
    for entry in networks:
        try:
            if ip_obj in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            if entry == ip:
                return True
    return False


def get_client_ip(request: Request, trusted_proxy_cidrs: Optional[list[str]] = None) -> Optional[str]:
    """Client IP, honouring X-Real-IP / X-Forwarded-For only from trusted proxies.

    Vercel and other edge proxies append the caller to X-Forwarded-For, so the
    rightmost entry is the one added by the nearest trusted hop.
    """
    peer_ip = request.client.host if request.client else None
    trusted = trusted_proxy_cidrs if trusted_proxy_cidrs is not None else get_settings().trusted_proxy_cidrs
    if not (peer_ip and trusted and _ip_in_networks(peer_ip, trusted)):
        return peer_ip

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    forwarded = [part.strip() for part in request.headers.get("x-forwarded-for", "").split(",") if part.strip()]
    if forwarded:
        return forwarded[-1]
    return peer_ip


def enforce_rate_limit(request: Request, *, scope: str, limit: int, window_seconds: int = 60) -> None:
    """Raise 429 once ``limit`` hits per IP are exceeded for ``scope``."""
    ip = get_client_ip(request) or "unknown"
    allowed, _ = rate_limiter.allow(f"{scope}:ip:{ip}", limit, window_seconds)
    if not allowed:
        alert_tracker.record("RATE_LIMIT_BLOCKED", {"scope": scope, "path": request.url.path})
        raise HTTPException(429, "Too Many Requests")
