"""In-process TTL cache shielding adapters from repeated calls."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, List

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .scheduler import ScheduledJob, Scheduler

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

Clock = Callable[[], float]


@dataclasses.dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    fetched_at: float


class TTLCache:
    """Keyed store with a fixed freshness window.

    Every :meth:`get` re-checks ``now - fetched_at < ttl``; stale entries are
    reported as absent but only removed by :meth:`purge_expired`, which is
    meant to run as a periodic side task.  A single lock guards the mapping
    so concurrent readers and writers never observe a half-written entry.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, *, clock: Clock | None = None) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than zero")
        self._ttl = float(ttl_seconds)
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.fetched_at < self._ttl

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_fresh(entry, self._clock()):
                return None
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, fetched_at=self._clock())

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self, grace_seconds: float = 0.0) -> int:
        """Drop entries whose TTL lapsed more than ``grace_seconds`` ago."""

        threshold = self._ttl + max(0.0, grace_seconds)
        with self._lock:
            now = self._clock()
            stale = [
                key
                for key, entry in self._entries.items()
                if now - entry.fetched_at >= threshold
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Purged %d expired cache entries", len(stale))
        return len(stale)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def size(self) -> int:
        return len(self)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


def schedule_cache_maintenance(
    scheduler: "Scheduler",
    cache: TTLCache,
    *,
    interval: float = 60.0,
    grace_seconds: float = DEFAULT_TTL_SECONDS,
) -> "ScheduledJob":
    """Register a job that periodically bounds the cache's memory."""

    async def _sweep() -> None:
        cache.purge_expired(grace_seconds)

    return scheduler.add_job(_sweep, interval=interval, name="cache-maintenance")


__all__ = ["CacheEntry", "DEFAULT_TTL_SECONDS", "TTLCache", "schedule_cache_maintenance"]
