from __future__ import annotations

import asyncio

from apexpick.scheduler import Scheduler


def test_scheduler_retries_and_graceful_shutdown() -> None:
    async def runner() -> tuple[int, int]:
        scheduler = Scheduler()
        attempts = 0

        async def failing_job() -> None:
            nonlocal attempts
            attempts += 1
            if attempts < 2:
                raise RuntimeError("boom")

        job = scheduler.add_job(failing_job, interval=0.01, retries=1, retry_backoff=0.01)
        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)
        assert job.last_error == "boom"
        return job.runs, job.failures

    runs, failures = asyncio.run(runner())
    assert runs >= 1
    assert failures == 1


def test_job_names_and_initial_delay() -> None:
    async def runner() -> int:
        calls = 0

        async def tick() -> None:
            nonlocal calls
            calls += 1

        async with Scheduler() as scheduler:
            named = scheduler.add_job(tick, interval=10, initial_delay=10, name="slow")
            default = scheduler.add_job(tick, interval=10)
            assert [job.name for job in scheduler.jobs] == ["slow", "tick"]
            assert named is scheduler.jobs[0] and default is scheduler.jobs[1]
            task = asyncio.create_task(scheduler.run())
            await asyncio.sleep(0.02)
            scheduler.stop()
            await asyncio.wait_for(task, timeout=1)
        return calls

    # The delayed job never fires; the other runs once before its long interval.
    assert asyncio.run(runner()) == 1


def test_run_without_jobs_returns_immediately() -> None:
    asyncio.run(asyncio.wait_for(Scheduler().run(), timeout=1))
