import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.services.notification_channels import DeliveryError
from app.utils.alerting import alert_tracker
from app.utils.rate_limit import rate_limiter

os.environ.setdefault("ENVIRONMENT", "test")


@pytest.fixture(autouse=True)
def _reset_process_state():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance, rate-limit buckets or alert counters across tests.
    get_settings.cache_clear()
    rate_limiter.reset()
    alert_tracker.reset()
    yield
    get_settings.cache_clear()
    rate_limiter.reset()
    alert_tracker.reset()


class FakeClock:
    """Callable clock plus an async sleep that advances it instead of waiting."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class StubTransport:
    """Records every send; fails the first ``failures`` calls (or all of them)."""

    def __init__(
        self,
        *,
        failures: int = 0,
        always_fail: bool = False,
        error: type[Exception] = DeliveryError,
        clock: Optional[FakeClock] = None,
        fail_for: tuple[str, ...] = (),
    ) -> None:
        self.failures = failures
        self.always_fail = always_fail
        self.error = error
        self.clock = clock
        self.fail_for = fail_for
        self.calls: list = []
        self.times: list[datetime] = []

    async def send(self, payload) -> None:
        self.calls.append(payload)
        if self.clock is not None:
            self.times.append(self.clock())
        await asyncio.sleep(0)
        if self.always_fail or len(self.calls) <= self.failures or payload.to in self.fail_for:
            raise self.error(f"provider unavailable (call {len(self.calls)})")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub_transport_cls():
    return StubTransport


def _install_test_auth_override(app):
    """Dependency override that reads the caller's role from X-Test-* headers."""
    from app.core.auth import CurrentUser, get_current_user

    def _test_get_current_user(request: Request):
        if "x-test-role" not in request.headers:
            raise HTTPException(401, "Missing bearer token")
        return CurrentUser(
            id=request.headers.get("x-test-sub", "00000000-0000-0000-0000-000000000001"),
            role=request.headers["x-test-role"],
            email=request.headers.get("x-test-email", "tests@example.com"),
        )

    app.dependency_overrides[get_current_user] = _test_get_current_user


def auth_headers(role: str = "ADMIN") -> dict:
    return {"X-Test-Role": role, "X-Test-Sub": "00000000-0000-0000-0000-000000000001"}


@pytest.fixture
def api_queue(fake_clock):
    """Queue wired into the app with succeeding stub transports and instant retries."""
    from app.models.notification import NotificationChannel
    from app.services.notification_queue import NotificationQueue

    transports = {
        NotificationChannel.EMAIL: StubTransport(clock=fake_clock),
        NotificationChannel.WHATSAPP: StubTransport(clock=fake_clock),
    }
    return NotificationQueue(transports, clock=fake_clock, sleep=fake_clock.sleep)


@pytest_asyncio.fixture
async def client(api_queue):
    # ASGITransport does not run startup events, so the queue is attached directly.
    from app.main import app

    _install_test_auth_override(app)
    app.state.notification_queue = api_queue
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test", headers=auth_headers()) as c:
            yield c
        await api_queue.join()
    finally:
        app.state.notification_queue = None
        app.dependency_overrides.clear()


@pytest.fixture
def env(monkeypatch):
    """Set environment variables for one test and drop the cached settings."""

    def _set(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()

    return _set
