"""Tests for keyscout.pipeline.loop — the periodic driver."""

from __future__ import annotations

import asyncio

import pytest

from keyscout.pipeline.loop import run_periodic, sleep_or_stop


class TestSleepOrStop:
    @pytest.mark.asyncio
    async def test_times_out(self):
        assert await sleep_or_stop(asyncio.Event(), 0.01) is False

    @pytest.mark.asyncio
    async def test_already_stopped(self):
        stop = asyncio.Event()
        stop.set()
        assert await sleep_or_stop(stop, 60) is True

    @pytest.mark.asyncio
    async def test_wakes_on_stop(self):
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, stop.set)
        assert await asyncio.wait_for(sleep_or_stop(stop, 60), timeout=5) is True


class TestRunPeriodic:
    @pytest.mark.asyncio
    async def test_max_cycles(self):
        calls = []

        async def cycle():
            calls.append(1)

        ran = await run_periodic("test", cycle, delay=0, stop=asyncio.Event(), max_cycles=3)
        assert ran == 3
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_failure_does_not_end_loop(self):
        calls = []

        async def cycle():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database went away")

        ran = await run_periodic(
            "test", cycle, delay=0, stop=asyncio.Event(), recovery_delay=0, max_cycles=3
        )
        assert ran == 3
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_failure_waits_recovery_delay(self):
        waits = []

        async def cycle():
            raise RuntimeError("boom")

        async def fake_sleep(stop, seconds):
            waits.append(seconds)
            return False

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("keyscout.pipeline.loop.sleep_or_stop", fake_sleep)
            await run_periodic(
                "test", cycle, delay=30, stop=asyncio.Event(), recovery_delay=5, max_cycles=2
            )
        assert waits == [5]

    @pytest.mark.asyncio
    async def test_success_waits_delay(self):
        waits = []

        async def cycle():
            pass

        async def fake_sleep(stop, seconds):
            waits.append(seconds)
            return False

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("keyscout.pipeline.loop.sleep_or_stop", fake_sleep)
            await run_periodic("test", cycle, delay=30, stop=asyncio.Event(), max_cycles=3)
        assert waits == [30, 30]

    @pytest.mark.asyncio
    async def test_stop_during_sleep(self):
        stop = asyncio.Event()
        calls = []

        async def cycle():
            calls.append(1)
            stop.set()

        ran = await asyncio.wait_for(run_periodic("test", cycle, delay=60, stop=stop), timeout=5)
        assert ran == 1

    @pytest.mark.asyncio
    async def test_preset_stop_runs_nothing(self):
        stop = asyncio.Event()
        stop.set()

        async def cycle():
            raise AssertionError("should not run")

        assert await run_periodic("test", cycle, delay=0, stop=stop) == 0
