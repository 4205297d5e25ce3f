"""Tests for the TTL profile cache."""

from __future__ import annotations

import asyncio

import pytest

from apexpick.cache import TTLCache, schedule_cache_maintenance
from apexpick.scheduler import Scheduler


def test_entry_is_fresh_until_ttl_elapses(clock) -> None:
    cache = TTLCache(300, clock=clock)
    cache.set("soccer:arsenal", "profile")

    clock.advance(299.9)
    assert cache.get("soccer:arsenal") == "profile"

    clock.advance(0.1)
    assert cache.get("soccer:arsenal") is None
    assert "soccer:arsenal" not in cache


def test_expired_entries_linger_until_purged(clock) -> None:
    cache = TTLCache(10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    clock.advance(5)
    cache.set("b", 3)
    clock.advance(6)

    assert cache.get("a") is None
    assert len(cache) == 2
    assert cache.purge_expired() == 1
    assert cache.keys() == ["b"]
    assert cache.get("b") == 3


def test_purge_respects_grace_period(clock) -> None:
    cache = TTLCache(10, clock=clock)
    cache.set("a", 1)
    clock.advance(15)

    assert cache.purge_expired(grace_seconds=10) == 0
    clock.advance(5)
    assert cache.purge_expired(grace_seconds=10) == 1
    assert cache.size() == 0


def test_invalidate_and_clear(clock) -> None:
    cache = TTLCache(clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.invalidate("a") is True
    assert cache.invalidate("a") is False
    cache.clear()
    assert len(cache) == 0
    assert cache.ttl_seconds == pytest.approx(300.0)


def test_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        TTLCache(0)


def test_maintenance_job_purges_stale_entries(clock) -> None:
    cache = TTLCache(1, clock=clock)
    cache.set("stale", 1)
    clock.advance(5)

    async def _run() -> None:
        scheduler = Scheduler()
        job = schedule_cache_maintenance(scheduler, cache, interval=0.01, grace_seconds=0)
        assert job.name == "cache-maintenance"

        async def _stop_later() -> None:
            await asyncio.sleep(0.05)
            scheduler.stop()

        await asyncio.gather(scheduler.run(), _stop_later())
        assert job.runs >= 1

    asyncio.run(_run())
    assert len(cache) == 0
