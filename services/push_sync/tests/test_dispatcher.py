"""
Unit tests for the detached push job pool.
"""

import asyncio

import pytest

from services.push_sync.dispatcher import PushDispatcher


class TestPushDispatcher:
    """Test cases for PushDispatcher."""

    @pytest.mark.asyncio
    async def test_submit_returns_awaitable_handle(self):
        dispatcher = PushDispatcher()

        async def job():
            return "done"

        task = dispatcher.submit(job, name="push:test")

        assert await task == "done"
        assert task.get_name() == "push:test"

    @pytest.mark.asyncio
    async def test_failures_are_contained(self):
        dispatcher = PushDispatcher()

        async def job():
            raise RuntimeError("boom")

        assert await dispatcher.submit(job) is None

    @pytest.mark.asyncio
    async def test_timeout_cancels_job(self):
        dispatcher = PushDispatcher(timeout=0.01)
        finished = []

        async def job():
            await asyncio.sleep(1)
            finished.append(True)

        assert await dispatcher.submit(job) is None
        assert finished == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        dispatcher = PushDispatcher(max_concurrent=2)
        running = 0
        peak = 0

        async def job():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        tasks = [dispatcher.submit(job) for _ in range(6)]
        await asyncio.gather(*tasks)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_pending_tracks_in_flight_jobs(self):
        dispatcher = PushDispatcher()
        release = asyncio.Event()

        async def job():
            await release.wait()

        task = dispatcher.submit(job)
        await asyncio.sleep(0)
        assert dispatcher.pending == 1

        release.set()
        await task
        await asyncio.sleep(0)
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_jobs(self):
        dispatcher = PushDispatcher()
        finished = []

        async def job():
            await asyncio.sleep(0.01)
            finished.append(True)

        dispatcher.submit(job)
        dispatcher.submit(job)

        assert await dispatcher.drain(timeout=5)
        assert finished == [True, True]

    @pytest.mark.asyncio
    async def test_drain_cancels_after_timeout(self):
        dispatcher = PushDispatcher()

        async def job():
            await asyncio.sleep(10)

        task = dispatcher.submit(job)

        assert await dispatcher.drain(timeout=0.01) is False
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_drain_without_jobs(self):
        assert await PushDispatcher().drain() is True
