"""In-process job registry using asyncio worker tasks.

Jobs are registered as queued, picked up by a small pool of worker tasks and
tracked in memory until evicted. Synchronous work runs in the default thread
executor so it never blocks the event loop; coroutine work runs on the loop.
"""

import asyncio
import inspect
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, List, Optional

from gamedeck.errors import JobNotFound
from gamedeck.jobs.dispatcher import JobDispatcher
from gamedeck.jobs.install_state import InstallJobState
from gamedeck.jobs.models import InstallSnapshot, JobKind, JobSnapshot
from gamedeck.jobs.progress import ProgressChannel
from gamedeck.jobs.state import JobState, ProgressReporter, utc_now

logger = logging.getLogger(__name__)

# work(progress, cancel) -> None | Awaitable[None]
WorkFn = Callable[[ProgressReporter, threading.Event], object]
# work(state, cancel) -> None | Awaitable[None]
InstallWorkFn = Callable[[InstallJobState, threading.Event], object]
JobSink = Callable[[JobSnapshot], None]

JANITOR_INTERVAL_SECONDS = 60.0


@dataclass
class _TrackedJob:
    state: JobState
    work: Callable
    hands_state: bool = False


def _is_async(fn: Callable) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


def _error_text(exc: BaseException) -> str:
    text = str(exc).strip()
    return text or type(exc).__name__


class JobRegistry(JobDispatcher):
    """Authoritative in-memory map of job id to live job state."""

    def __init__(
        self,
        max_concurrency: int = 4,
        result_ttl_hours: float = 2,
        stream_queue_size: int = 256,
        event_history: int = 50,
    ):
        self._jobs: Dict[str, _TrackedJob] = {}
        self._max_concurrency = max(1, max_concurrency)
        self._result_ttl = timedelta(hours=result_ttl_hours)
        self._stream_queue_size = stream_queue_size
        self._event_history = event_history
        self._sinks: List[JobSink] = []
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._workers: List[asyncio.Task] = []
        self._janitor: Optional[asyncio.Task] = None
        self._running = False

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(), name=f"job-worker-{i}")
            for i in range(self._max_concurrency)
        ]
        self._janitor = asyncio.create_task(self._janitor_loop(), name="job-janitor")
        logger.info("Job registry started with %d worker(s)", self._max_concurrency)

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._workers)
        if self._janitor:
            tasks.append(self._janitor)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._janitor = None

        # Anything still waiting never ran; it still passes through running
        # so every job follows queued -> running -> terminal.
        while self._queue is not None and not self._queue.empty():
            job_id = self._queue.get_nowait()
            tracked = self._jobs.get(job_id)
            if tracked is None:
                continue
            if tracked.state.mark_running():
                self._notify(tracked.state.snapshot())
            if tracked.state.mark_failed("Job dispatcher stopped before the job started"):
                self._notify(tracked.state.snapshot())
        logger.info("Job registry stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def add_sink(self, sink: JobSink) -> None:
        """Register a callback notified on every status transition."""
        self._sinks.append(sink)

    # -- submission --------------------------------------------------------

    def submit(self, kind: JobKind, subject: str, work: WorkFn) -> str:
        job_id = uuid.uuid4().hex
        state = JobState(job_id, JobKind(kind), subject, self._new_channel())
        self._enqueue(_TrackedJob(state=state, work=work))
        return job_id

    def submit_install(self, subject: str, work: InstallWorkFn,
                       kind: JobKind = JobKind.MODPACK_INSTALL) -> str:
        job_id = uuid.uuid4().hex
        state = InstallJobState(job_id, subject, self._new_channel(), kind=JobKind(kind))
        self._enqueue(_TrackedJob(state=state, work=work, hands_state=True))
        return job_id

    def _new_channel(self) -> ProgressChannel:
        if not self._running or self._loop is None:
            raise RuntimeError("Job registry is not running")
        return ProgressChannel(self._loop, self._stream_queue_size, self._event_history)

    def _enqueue(self, tracked: _TrackedJob) -> None:
        state = tracked.state
        self._jobs[state.job_id] = tracked
        self._queue.put_nowait(state.job_id)
        self._notify(state.snapshot())
        logger.info("Queued job %s (%s) for %s", state.job_id, state.kind.value, state.subject)

    def cancel(self, job_id: str) -> bool:
        """Signal the job's work to stop. Advisory: the work decides when."""
        tracked = self._jobs.get(job_id)
        if tracked is None:
            raise JobNotFound(job_id)
        if tracked.state.is_complete:
            return False
        tracked.state.cancel_event.set()
        logger.info("Cancellation requested for job %s", job_id)
        return True

    # -- reads -------------------------------------------------------------

    def get_status(self, job_id: str) -> Optional[JobSnapshot]:
        tracked = self._jobs.get(job_id)
        if tracked is None:
            return None
        return tracked.state.snapshot()

    def get_install_status(self, job_id: str) -> Optional[InstallSnapshot]:
        tracked = self._jobs.get(job_id)
        if tracked is None or not isinstance(tracked.state, InstallJobState):
            return None
        return tracked.state.snapshot()

    def list_jobs(self) -> List[JobSnapshot]:
        snapshots = [t.state.snapshot() for t in list(self._jobs.values())]
        snapshots.sort(key=lambda s: s.started_at, reverse=True)
        return snapshots

    def recent_events(self, job_id: str) -> List[JobSnapshot]:
        tracked = self._jobs.get(job_id)
        if tracked is None:
            raise JobNotFound(job_id)
        return tracked.state.channel.history()

    async def stream_status(self, job_id: str) -> AsyncIterator[JobSnapshot]:
        tracked = self._jobs.get(job_id)
        if tracked is None:
            raise JobNotFound(job_id)

        channel = tracked.state.channel
        # Subscribe before reading the snapshot so nothing falls in between.
        queue = channel.subscribe()
        try:
            current = tracked.state.snapshot()
            yield current
            if current.is_terminal:
                return
            last_sequence = current.sequence
            while True:
                event = await queue.get()
                if event.sequence <= last_sequence:
                    continue
                last_sequence = event.sequence
                yield event
                if event.is_terminal:
                    return
        finally:
            channel.unsubscribe(queue)

    # -- eviction ----------------------------------------------------------

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Drop terminal jobs whose completion is older than the result TTL."""
        now = now or utc_now()
        expired = []
        for job_id, tracked in list(self._jobs.items()):
            completed_at = tracked.state.snapshot().completed_at
            if completed_at is not None and now - completed_at > self._result_ttl:
                expired.append(job_id)
        for job_id in expired:
            self._jobs.pop(job_id, None)
        if expired:
            logger.info("Evicted %d finished job(s)", len(expired))
        return len(expired)

    # -- execution ---------------------------------------------------------

    async def _janitor_loop(self) -> None:
        while self._running:
            await asyncio.sleep(JANITOR_INTERVAL_SECONDS)
            self.evict_expired()

    async def _worker_loop(self) -> None:
        while self._running:
            job_id = await self._queue.get()
            try:
                tracked = self._jobs.get(job_id)
                if tracked is not None:
                    await self._run(tracked)
            finally:
                self._queue.task_done()

    async def _run(self, tracked: _TrackedJob) -> None:
        state = tracked.state
        if not state.mark_running():
            return
        self._notify(state.snapshot())
        logger.info("Job %s (%s) started", state.job_id, state.kind.value)

        handle = state if tracked.hands_state else ProgressReporter(state)
        try:
            if _is_async(tracked.work):
                await tracked.work(handle, state.cancel_event)
            else:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, tracked.work, handle, state.cancel_event)
        except asyncio.CancelledError:
            state.cancel_event.set()
            state.mark_failed("Job was cancelled")
            self._notify(state.snapshot())
            logger.warning("Job %s was cancelled", state.job_id)
            raise
        except Exception as exc:
            state.mark_failed(_error_text(exc))
            logger.exception("Job %s failed", state.job_id)
        else:
            if state.mark_completed():
                logger.info("Job %s completed successfully", state.job_id)
        self._notify(state.snapshot())

    def _notify(self, snapshot: JobSnapshot) -> None:
        for sink in self._sinks:
            try:
                sink(snapshot)
            except Exception:
                logger.exception("Job sink failed for %s", snapshot.id)
