"""Asynchronous scheduler for cache warm-up and maintenance jobs.

Retries for unreliable sources live here rather than inside an aggregation
call: a failed job waits ``retry_backoff * attempt`` seconds and tries again,
up to ``retries`` times, before falling back to its normal interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

logger = logging.getLogger(__name__)


AsyncCallable = Callable[[], Awaitable[Any]]


async def _sleep_unless_stopped(stopping: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``; ``True`` means the scheduler was stopped."""

    try:
        await asyncio.wait_for(stopping.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


@dataclasses.dataclass(slots=True)
class ScheduledJob:
    """A coroutine factory executed every ``interval`` seconds."""

    name: str
    action: AsyncCallable
    interval: float
    jitter: float = 0.0
    retries: int = 0
    retry_backoff: float = 2.0
    initial_delay: float = 0.0
    runs: int = 0
    failures: int = 0
    last_error: str | None = None

    def next_interval(self) -> float:
        delay = max(0.0, self.interval)
        if delay and self.jitter:
            delay = max(0.0, delay + random.uniform(-self.jitter, self.jitter))
        return delay

    async def _attempt(self) -> bool:
        try:
            await self.action()
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except Exception as exc:
            self.failures += 1
            self.last_error = str(exc) or type(exc).__name__
            logger.exception("Job %s failed", self.name)
            return False
        self.runs += 1
        return True

    async def run(self, stopping: asyncio.Event) -> None:
        """Run ``action`` on schedule until ``stopping`` is set."""

        if self.initial_delay > 0 and await _sleep_unless_stopped(stopping, self.initial_delay):
            return
        consecutive_failures = 0
        while not stopping.is_set():
            if await self._attempt():
                consecutive_failures = 0
            else:
                consecutive_failures += 1
                if consecutive_failures <= self.retries:
                    backoff = max(0.0, self.retry_backoff) * consecutive_failures
                    logger.info(
                        "Retrying %s in %.1fs (%d/%d)",
                        self.name,
                        backoff,
                        consecutive_failures,
                        self.retries,
                    )
                    if await _sleep_unless_stopped(stopping, backoff):
                        return
                    continue
                consecutive_failures = 0
            delay = self.next_interval()
            if delay == 0:
                await asyncio.sleep(0)
            elif await _sleep_unless_stopped(stopping, delay):
                return


class Scheduler:
    """Run registered jobs concurrently until stopped."""

    def __init__(self) -> None:
        self._jobs: list[ScheduledJob] = []
        self._running: list[asyncio.Task[Any]] = []
        self._stopping = asyncio.Event()

    async def __aenter__(self) -> "Scheduler":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    @property
    def jobs(self) -> Sequence[ScheduledJob]:
        return tuple(self._jobs)

    def add_job(
        self,
        action: AsyncCallable,
        *,
        interval: float,
        jitter: float = 0.0,
        retries: int = 0,
        retry_backoff: float = 2.0,
        initial_delay: float = 0.0,
        name: str | None = None,
    ) -> ScheduledJob:
        job = ScheduledJob(
            name=name or getattr(action, "__name__", "job"),
            action=action,
            interval=interval,
            jitter=jitter,
            retries=retries,
            retry_backoff=retry_backoff,
            initial_delay=initial_delay,
        )
        self._jobs.append(job)
        logger.debug("Scheduled %s every %.1fs", job.name, interval)
        return job

    def stop(self) -> None:
        self._stopping.set()

    async def run(self) -> None:
        """Block until :meth:`stop` is called or every job has returned."""

        if not self._jobs:
            return
        self._stopping.clear()
        self._running = [
            asyncio.create_task(job.run(self._stopping), name=job.name) for job in self._jobs
        ]
        watcher = asyncio.create_task(self._stopping.wait())
        try:
            await asyncio.wait([watcher, *self._running], return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
            await self.shutdown()

    async def shutdown(self) -> None:
        """Cancel whatever is still running and wait for it to finish."""

        pending = [task for task in self._running if not task.done()]
        for task in pending:
            task.cancel()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
        self._running = []


__all__ = ["AsyncCallable", "ScheduledJob", "Scheduler"]
