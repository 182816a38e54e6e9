"""Tests for the sequential confirmation queue."""

import asyncio

import pytest

from formation_agent.core.confirmation_queue import ConfirmationQueue


@pytest.mark.asyncio
async def test_flows_run_one_at_a_time_in_order():
    queue = ConfirmationQueue()
    log = []
    release_first = asyncio.Event()

    async def first():
        log.append("first:start")
        await release_first.wait()
        log.append("first:end")

    async def second():
        log.append("second:start")

    await queue.add_task(first)
    await queue.add_task(second)
    for _ in range(5):
        await asyncio.sleep(0)

    assert log == ["first:start"]
    assert queue.active == "first"
    assert queue.pending() == 1

    release_first.set()
    await queue.wait_until_processed()
    assert log == ["first:start", "first:end", "second:start"]
    assert not queue.running


@pytest.mark.asyncio
async def test_failing_flow_does_not_block_the_next(caplog):
    queue = ConfirmationQueue()
    ran = []

    async def broken():
        raise RuntimeError("boom")

    async def fine(value):
        ran.append(value)

    await queue.add_task(broken)
    await queue.add_task(fine, "ok")
    await queue.wait_until_processed()

    assert ran == ["ok"]
    assert "boom" in caplog.text


@pytest.mark.asyncio
async def test_stop_cancels_running_and_drops_waiting():
    queue = ConfirmationQueue()
    started = []

    async def blocking(name):
        started.append(name)
        await asyncio.Event().wait()

    await queue.add_task(blocking, "a")
    await queue.add_task(blocking, "b")
    for _ in range(5):
        await asyncio.sleep(0)

    await queue.stop()

    assert started == ["a"]
    assert queue.pending() == 0
    assert not queue.running
