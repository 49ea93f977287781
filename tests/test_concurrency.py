"""Tests for race_with_timeout."""

import asyncio

import pytest

from utils.concurrency import race_with_timeout


@pytest.mark.asyncio
async def test_fast_result_wins():
    async def fast():
        return "done"

    assert await race_with_timeout(fast(), timeout=1) == "done"


@pytest.mark.asyncio
async def test_errors_propagate():
    async def broken():
        raise ValueError("bad response")

    with pytest.raises(ValueError):
        await race_with_timeout(broken(), timeout=1)


@pytest.mark.asyncio
async def test_timer_wins_and_work_is_abandoned_not_cancelled():
    finished = asyncio.Event()

    async def slow():
        await asyncio.sleep(0.05)
        finished.set()
        return "late"

    with pytest.raises(asyncio.TimeoutError, match="gpt timed out"):
        await race_with_timeout(slow(), timeout=0.01, label="gpt")

    await asyncio.wait_for(finished.wait(), timeout=1)
