"""
Tests for recurring jobs: notification status retention.

Covers:
  - Terminal statuses older than the retention window are purged
  - Retention is clamped to at least one minute
  - The worker loop purges only when recurring jobs are enabled
  - The worker task is cancellable
"""

from __future__ import annotations

import asyncio

import pytest

from app.models.notification import EmailPayload, NotificationChannel, NotificationDraft


def _queue(fake_clock, stub_transport_cls):
    from app.services.notification_queue import NotificationQueue

    return NotificationQueue(
        {NotificationChannel.EMAIL: stub_transport_cls()},
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )


def _draft(to: str) -> NotificationDraft:
    return NotificationDraft(payload=EmailPayload(to=to, subject="s", template="welcomeEmail"))


@pytest.mark.asyncio
async def test_purge_expired_notifications(env, fake_clock, stub_transport_cls):
    from app.services.recurring_jobs import purge_expired_notifications

    env(NOTIFICATION_RETENTION_SECONDS="3600")
    queue = _queue(fake_clock, stub_transport_cls)
    old_id = queue.enqueue(_draft("old@example.com"))
    await queue.join()
    fake_clock.advance(7200)
    new_id = queue.enqueue(_draft("new@example.com"))
    await queue.join()

    assert purge_expired_notifications(queue) == 1
    assert queue.get_queue_stats().total == 1
    assert queue.get_status(new_id).id == new_id
    with pytest.raises(LookupError):
        queue.get_status(old_id)


@pytest.mark.asyncio
async def test_purge_retention_has_one_minute_floor(env, fake_clock, stub_transport_cls):
    from app.services.recurring_jobs import purge_expired_notifications

    env(NOTIFICATION_RETENTION_SECONDS="0")
    queue = _queue(fake_clock, stub_transport_cls)
    queue.enqueue(_draft("a@example.com"))
    await queue.join()

    fake_clock.advance(30)
    assert purge_expired_notifications(queue) == 0

    fake_clock.advance(31)
    assert purge_expired_notifications(queue) == 1


@pytest.mark.asyncio
async def test_retention_loop_skips_purge_when_jobs_disabled(env):
    from app.services import recurring_jobs

    env(ENABLE_RECURRING_JOBS="false")
    calls = []

    async def _stop_after_first_sleep(seconds):
        raise asyncio.CancelledError

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(recurring_jobs, "purge_expired_notifications", lambda queue: calls.append(queue))
        mp.setattr(recurring_jobs.asyncio, "sleep", _stop_after_first_sleep)
        with pytest.raises(asyncio.CancelledError):
            await recurring_jobs._notification_retention_loop(object(), interval_seconds=30)

    assert calls == []


@pytest.mark.asyncio
async def test_retention_loop_purges_and_backs_off_on_error(env):
    from app.services import recurring_jobs

    env(ENABLE_RECURRING_JOBS="true")
    sleeps = []
    calls = []

    def _purge(queue):
        calls.append(queue)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return 0

    async def _sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            raise asyncio.CancelledError

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(recurring_jobs, "purge_expired_notifications", _purge)
        mp.setattr(recurring_jobs.asyncio, "sleep", _sleep)
        with pytest.raises(asyncio.CancelledError):
            await recurring_jobs._notification_retention_loop("queue", interval_seconds=300)

    assert calls == ["queue", "queue"]
    # First failure sleeps the error backoff, then the regular interval.
    assert sleeps == [60, 300]


@pytest.mark.asyncio
async def test_worker_task_can_be_cancelled(env, fake_clock, stub_transport_cls):
    from app.services.recurring_jobs import start_notification_retention_worker

    env(ENABLE_RECURRING_JOBS="true", NOTIFICATION_RETENTION_INTERVAL_SECONDS="5")
    task = start_notification_retention_worker(_queue(fake_clock, stub_transport_cls))
    await asyncio.sleep(0)

    assert not task.done()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
