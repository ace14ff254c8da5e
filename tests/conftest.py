"""
Shared test fixtures.

Provides: a started job registry, a terminal-state waiter, an event loop
bound progress channel.
"""

import asyncio
import time

import pytest

from gamedeck.jobs.progress import ProgressChannel
from gamedeck.jobs.registry import JobRegistry


@pytest.fixture
async def registry():
    """Started registry with two workers; stopped after the test."""
    reg = JobRegistry(max_concurrency=2, result_ttl_hours=1, stream_queue_size=64, event_history=10)
    await reg.start()
    yield reg
    await reg.stop()


@pytest.fixture
async def channel():
    return ProgressChannel(asyncio.get_running_loop(), queue_size=64, history=10)


@pytest.fixture
def wait_terminal():
    """Poll ``read()`` until it returns a terminal snapshot."""

    async def wait(read, timeout: float = 10.0):
        deadline = time.monotonic() + timeout
        while True:
            snapshot = read()
            if snapshot is not None and snapshot.status.is_terminal:
                return snapshot
            if time.monotonic() > deadline:
                raise AssertionError(f"Still not terminal after {timeout}s: {snapshot}")
            await asyncio.sleep(0.02)

    return wait
