"""Non-blocking fan-out of job snapshots to live subscribers."""

import asyncio
import logging
from collections import deque
from typing import Deque, List, Set

from gamedeck.jobs.models import JobSnapshot

logger = logging.getLogger(__name__)


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class ProgressChannel:
    """Bridges one job's progress reports to any number of stream subscribers.

    Publishing never waits on a subscriber. Each subscriber owns a bounded
    queue; when it is full the oldest buffered snapshot is dropped, so a slow
    reader only loses intermediate ticks, never ordering and never the final
    snapshot (which is always the last one published).

    ``publish`` may be called from any thread. Delivery always happens on the
    event loop the channel was created on.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue_size: int = 256, history: int = 50):
        self._loop = loop
        self._queue_size = max(1, queue_size)
        self._subscribers: Set[asyncio.Queue] = set()
        self._history: Deque[JobSnapshot] = deque(maxlen=max(1, history))

    def subscribe(self) -> "asyncio.Queue[JobSnapshot]":
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def history(self) -> List[JobSnapshot]:
        return list(self._history)

    def publish(self, snapshot: JobSnapshot) -> None:
        if _on_loop(self._loop):
            self._deliver(snapshot)
            return
        try:
            self._loop.call_soon_threadsafe(self._deliver, snapshot)
        except RuntimeError:
            # Loop already closed (shutdown); pollers still see the state.
            logger.debug("Dropped event %s for job %s: loop closed", snapshot.sequence, snapshot.id)

    def _deliver(self, snapshot: JobSnapshot) -> None:
        self._history.append(snapshot)
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            queue.put_nowait(snapshot)
