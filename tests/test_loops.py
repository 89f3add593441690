"""Tests for PeriodicTask."""

import asyncio

import pytest

from zeppelin.core.loops import PeriodicTask


@pytest.mark.asyncio
async def test_runs_repeatedly_until_stopped():
    calls = []

    async def tick():
        calls.append(1)

    task = PeriodicTask("test", tick, 0.01, run_immediately=True)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()

    assert len(calls) >= 2
    assert task.running is False


@pytest.mark.asyncio
async def test_waits_one_interval_by_default():
    calls = []

    async def tick():
        calls.append(1)

    task = PeriodicTask("test", tick, 10)
    task.start()
    await asyncio.sleep(0.01)
    assert task.running is True
    await task.stop()

    assert calls == []


@pytest.mark.asyncio
async def test_errors_do_not_stop_the_loop():
    calls = []

    async def tick():
        calls.append(1)
        raise ValueError("broken")

    task = PeriodicTask("test", tick, 0.01, run_immediately=True)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()

    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    task = PeriodicTask("test", lambda: asyncio.sleep(0), 1)
    await task.stop()
    assert task.running is False
