from __future__ import annotations

import asyncio

import pytest

from squadfinders.modules.scheduler.job_runner import ScheduledJobRunner


def test_rejects_non_positive_interval():
    async def noop():
        return None

    with pytest.raises(ValueError):
        ScheduledJobRunner("bad", 0, noop)


def test_start_runs_immediately_and_is_idempotent():
    calls = []

    async def target():
        calls.append(1)
        return {"expired": 0}

    async def scenario():
        runner = ScheduledJobRunner("auto_expiry", 60, target)
        runner.start()
        runner.start()
        await asyncio.sleep(0.05)
        status = runner.get_status()
        await runner.stop()
        return runner, status

    runner, status = asyncio.run(scenario())
    assert len(calls) == 1, "Un segundo start() no debe crear otro timer"
    assert status.isRunning is True
    assert status.last_result == {"expired": 0}
    assert status.next_run is not None
    assert runner.is_running is False


def test_overlapping_tick_is_skipped():
    async def scenario():
        release = asyncio.Event()
        started = []

        async def slow():
            started.append(1)
            await release.wait()
            return "ok"

        runner = ScheduledJobRunner("player_cleanup", 60, slow)
        runner.start()
        await asyncio.sleep(0.01)
        manual = await runner.run_now()
        release.set()
        await asyncio.sleep(0.01)
        await runner.stop()
        return runner, manual, started

    runner, manual, started = asyncio.run(scenario())
    assert manual == {"skipped": True, "reason": "busy"}
    assert runner.skipped == 1
    assert len(started) == 1
    assert runner.last_result == "ok"


def test_failing_tick_does_not_stop_timer():
    async def scenario():
        async def broken():
            raise RuntimeError("mongo caído")

        runner = ScheduledJobRunner("user_seen_cleanup", 0.01, broken)
        runner.start()
        await asyncio.sleep(0.1)
        alive = runner.is_running
        await runner.stop()
        return runner, alive

    runner, alive = asyncio.run(scenario())
    assert alive is True
    assert runner.failures >= 2
    assert "mongo caído" in runner.last_error


def test_tick_timeout_is_recorded():
    async def scenario():
        async def hangs():
            await asyncio.sleep(5)

        runner = ScheduledJobRunner("auto_expiry", 60, hangs, tick_timeout=0.01)
        return runner, await runner.run_now()

    runner, outcome = asyncio.run(scenario())
    assert outcome["skipped"] is False
    assert outcome["error"].startswith("Timeout")
    assert runner.failures == 1


def test_stop_waits_for_in_flight_tick():
    finished = []

    async def scenario():
        async def work():
            await asyncio.sleep(0.05)
            finished.append(1)

        runner = ScheduledJobRunner("auto_expiry", 60, work, shutdown_timeout=1)
        runner.start()
        await asyncio.sleep(0.01)
        await runner.stop()
        return runner

    runner = asyncio.run(scenario())
    assert finished == [1]
    assert runner.busy is False


def test_stop_abandons_tick_after_shutdown_timeout():
    cancelled = []

    async def scenario():
        async def stuck():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(1)
                raise

        runner = ScheduledJobRunner("auto_expiry", 60, stuck, shutdown_timeout=0.05)
        runner.start()
        await asyncio.sleep(0.01)
        await runner.stop()
        return runner

    runner = asyncio.run(scenario())
    assert cancelled == [1]
    assert runner.is_running is False


def test_stop_when_stopped_is_noop():
    async def noop():
        return None

    runner = ScheduledJobRunner("auto_expiry", 60, noop)
    asyncio.run(runner.stop())
    assert runner.is_running is False
