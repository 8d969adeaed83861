from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from trending_tracker.models import RateLimitInfo
from trending_tracker.rate_limiter import RateLimiter


def test_rate_limiter_acquire_consumes_budget():
    limiter = RateLimiter()
    now = datetime.now(timezone.utc)

    async def scenario() -> int | None:
        await limiter.record(RateLimitInfo(limit=60, remaining=40, reset_at=now))
        await limiter.acquire()
        return await limiter.remaining()

    remaining = asyncio.run(scenario())
    assert remaining == 39


def test_rate_limiter_waits_when_budget_exhausted(monkeypatch):
    limiter = RateLimiter(minimum_sleep=0.0)
    reset_at = datetime.now(timezone.utc) + timedelta(seconds=5)

    slept = False

    async def fake_sleep(duration: float) -> None:  # pragma: no cover - patched behaviour
        nonlocal slept
        slept = True

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> int | None:
        await limiter.record(RateLimitInfo(limit=60, remaining=0, reset_at=reset_at))
        await limiter.acquire()
        return await limiter.remaining()

    remaining = asyncio.run(scenario())

    assert slept is True
    assert remaining is None


def test_rate_limiter_spaces_consecutive_calls(monkeypatch):
    ticks = iter([100.0, 100.05, 100.5])
    limiter = RateLimiter(min_interval=0.2, clock=lambda: next(ticks))
    sleeps: list[float] = []

    async def fake_sleep(duration: float) -> None:  # pragma: no cover - patched behaviour
        sleeps.append(round(duration, 6))

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> None:
        await limiter.acquire()  # first call, slot 100.0
        await limiter.acquire()  # 0.05s later: waits 0.15s for slot 100.2
        await limiter.acquire()  # past the next slot: no wait

    asyncio.run(scenario())

    assert sleeps == [0.15]


def test_rate_limiter_reset_clears_state():
    limiter = RateLimiter()
    now = datetime.now(timezone.utc)

    async def scenario() -> int | None:
        await limiter.record(RateLimitInfo(limit=60, remaining=5, reset_at=now))
        await limiter.reset()
        return await limiter.remaining()

    remaining = asyncio.run(scenario())

    assert remaining is None


def test_rate_limiter_state_is_readable_while_waiting_for_reset(monkeypatch):
    limiter = RateLimiter(minimum_sleep=0.0)
    reset_at = datetime.now(timezone.utc) + timedelta(seconds=5)
    observed: list[int | None] = []

    async def fake_sleep(duration: float) -> None:  # pragma: no cover - patched behaviour
        observed.append(await limiter.remaining())

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> None:
        await limiter.record(RateLimitInfo(limit=60, remaining=0, reset_at=reset_at))
        await limiter.acquire()

    asyncio.run(scenario())

    assert observed == [0]
