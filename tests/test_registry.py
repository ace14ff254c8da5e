"""
Tests for the job registry and its progress channel.

Covers submission, streaming order, sticky terminal states, cancellation,
shutdown and eviction.
"""

import asyncio
import threading
from datetime import timedelta

import pytest

from gamedeck.errors import JobCancelled, JobNotFound
from gamedeck.jobs.models import JobKind, JobSnapshot, JobStatus
from gamedeck.jobs.progress import ProgressChannel
from gamedeck.jobs.registry import JobRegistry
from gamedeck.jobs.state import JobState, utc_now


def _snapshot(sequence: int) -> JobSnapshot:
    return JobSnapshot(id="job", kind=JobKind.BACKUP, subject="s", started_at=utc_now(), sequence=sequence)


class TestSubmission:

    @pytest.mark.asyncio
    async def test_submit_returns_immediately_as_queued(self, registry):
        release = asyncio.Event()

        async def work(progress, cancel):
            await release.wait()

        job_id = registry.submit(JobKind.BACKUP, "survival", work)
        snapshot = registry.get_status(job_id)
        assert snapshot.status is JobStatus.QUEUED
        assert snapshot.kind is JobKind.BACKUP
        assert snapshot.subject == "survival"
        release.set()

    @pytest.mark.asyncio
    async def test_successful_work_completes_at_100(self, registry, wait_terminal):
        def work(progress, cancel):
            progress.report(30, "working")

        job_id = registry.submit(JobKind.BACKUP, "survival", work)
        snapshot = await wait_terminal(lambda: registry.get_status(job_id))
        assert snapshot.status is JobStatus.COMPLETED
        assert snapshot.percentage == 100
        assert snapshot.completed_at is not None
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_sync_work_runs_off_the_event_loop(self, registry, wait_terminal):
        threads = []

        def work(progress, cancel):
            threads.append(threading.current_thread())

        job_id = registry.submit(JobKind.IMPORT, "world", work)
        await wait_terminal(lambda: registry.get_status(job_id))
        assert threads and threads[0] is not threading.main_thread()

    @pytest.mark.asyncio
    async def test_failed_work_records_error_text(self, registry, wait_terminal):
        def work(progress, cancel):
            progress.report(40, "halfway")
            raise RuntimeError("disk full")

        job_id = registry.submit(JobKind.BACKUP, "survival", work)
        snapshot = await wait_terminal(lambda: registry.get_status(job_id))
        assert snapshot.status is JobStatus.FAILED
        assert snapshot.error == "disk full"
        assert snapshot.percentage == 40

    @pytest.mark.asyncio
    async def test_submit_requires_running_registry(self):
        idle = JobRegistry()
        with pytest.raises(RuntimeError):
            idle.submit(JobKind.BACKUP, "survival", lambda progress, cancel: None)

    @pytest.mark.asyncio
    async def test_unknown_job_reads(self, registry):
        assert registry.get_status("missing") is None
        assert registry.get_install_status("missing") is None
        with pytest.raises(JobNotFound):
            registry.cancel("missing")
        with pytest.raises(JobNotFound):
            async for _ in registry.stream_status("missing"):
                pass

    @pytest.mark.asyncio
    async def test_sinks_see_every_transition(self, registry, wait_terminal):
        seen = []
        registry.add_sink(lambda snapshot: seen.append(snapshot.status))

        job_id = registry.submit(JobKind.BACKUP, "survival", lambda progress, cancel: None)
        await wait_terminal(lambda: registry.get_status(job_id))
        assert seen == [JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_list_jobs_contains_every_job(self, registry, wait_terminal):
        ids = [registry.submit(JobKind.BACKUP, f"s{i}", lambda p, c: None) for i in range(3)]
        for job_id in ids:
            await wait_terminal(lambda: registry.get_status(job_id))
        assert {snapshot.id for snapshot in registry.list_jobs()} == set(ids)


class TestStreaming:

    @pytest.mark.asyncio
    async def test_stream_delivers_reports_in_order(self, registry):
        async def work(progress, cancel):
            progress.report(10, "starting")
            await asyncio.sleep(0.01)
            progress.report(50, "halfway")
            await asyncio.sleep(0.01)
            progress.report(100, "done")

        job_id = registry.submit(JobKind.MOD_INSTALL, "survival", work)
        events = [event async for event in registry.stream_status(job_id)]

        reported = [
            (event.percentage, event.message) for event in events
            if event.status is JobStatus.RUNNING and event.message is not None
        ]
        assert reported == [(10, "starting"), (50, "halfway"), (100, "done")]
        assert events[-1].status is JobStatus.COMPLETED
        assert events[-1].percentage == 100
        sequences = [event.sequence for event in events]
        assert sequences == sorted(set(sequences))

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_single_terminal_snapshot(self, registry, wait_terminal):
        job_id = registry.submit(JobKind.BACKUP, "survival", lambda progress, cancel: None)
        await wait_terminal(lambda: registry.get_status(job_id))

        events = [event async for event in registry.stream_status(job_id)]
        assert len(events) == 1
        assert events[0].status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stream_ends_after_failure(self, registry):
        async def work(progress, cancel):
            await asyncio.sleep(0.01)
            raise ValueError("bad archive")

        job_id = registry.submit(JobKind.IMPORT, "world", work)
        events = [event async for event in registry.stream_status(job_id)]
        assert events[-1].status is JobStatus.FAILED
        assert events[-1].error == "bad archive"

    @pytest.mark.asyncio
    async def test_concurrent_subscribers_see_same_terminal(self, registry):
        async def work(progress, cancel):
            for pct in range(0, 100, 10):
                progress.report(pct, f"step {pct}")
                await asyncio.sleep(0.005)

        job_id = registry.submit(JobKind.BACKUP, "survival", work)

        async def collect():
            return [event async for event in registry.stream_status(job_id)]

        first, second = await asyncio.gather(collect(), collect())
        assert first[-1] == second[-1]
        assert first[-1].status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stream_unsubscribes_when_finished(self, registry):
        job_id = registry.submit(JobKind.BACKUP, "survival", lambda progress, cancel: None)
        async for _ in registry.stream_status(job_id):
            pass
        tracked_channel = registry._jobs[job_id].state.channel
        assert tracked_channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_recent_events_are_bounded(self, registry, wait_terminal):
        def work(progress, cancel):
            for pct in range(1, 40):
                progress.report(pct)

        job_id = registry.submit(JobKind.BACKUP, "survival", work)
        await wait_terminal(lambda: registry.get_status(job_id))
        await asyncio.sleep(0.05)
        history = registry.recent_events(job_id)
        assert len(history) == 10
        assert history[-1].status is JobStatus.COMPLETED


class TestJobState:

    @pytest.mark.asyncio
    async def test_terminal_status_is_sticky(self, channel):
        state = JobState("job", JobKind.BACKUP, "survival", channel)
        assert state.mark_running()
        assert state.mark_completed("done")

        assert not state.report(10, "late")
        assert not state.mark_failed("too late")
        assert not state.mark_completed()
        snapshot = state.snapshot()
        assert snapshot.status is JobStatus.COMPLETED
        assert snapshot.message == "done"
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_percentage_never_decreases(self, channel):
        state = JobState("job", JobKind.BACKUP, "survival", channel)
        state.mark_running()
        state.report(40)
        state.report(20, "rewind")
        assert state.snapshot().percentage == 40
        assert state.snapshot().message == "rewind"

    @pytest.mark.asyncio
    async def test_percentage_is_clamped(self, channel):
        state = JobState("job", JobKind.BACKUP, "survival", channel)
        state.report(250)
        assert state.snapshot().percentage == 100

    @pytest.mark.asyncio
    async def test_every_mutation_bumps_sequence(self, channel):
        state = JobState("job", JobKind.BACKUP, "survival", channel)
        state.mark_running()
        state.report(10)
        state.report(20)
        state.mark_completed()
        assert state.snapshot().sequence == 4
        assert [event.sequence for event in channel.history()] == [1, 2, 3, 4]


class TestProgressChannel:

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        channel = ProgressChannel(asyncio.get_running_loop(), queue_size=2, history=3)
        queue = channel.subscribe()
        for sequence in range(1, 6):
            channel.publish(_snapshot(sequence))

        assert [queue.get_nowait().sequence for _ in range(queue.qsize())] == [4, 5]
        assert [event.sequence for event in channel.history()] == [3, 4, 5]

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self):
        channel = ProgressChannel(asyncio.get_running_loop())
        queue = channel.subscribe()

        await asyncio.get_running_loop().run_in_executor(None, channel.publish, _snapshot(1))
        event = await asyncio.wait_for(queue.get(), timeout=1)
        assert event.sequence == 1

    @pytest.mark.asyncio
    async def test_unsubscribed_queue_receives_nothing(self):
        channel = ProgressChannel(asyncio.get_running_loop())
        queue = channel.subscribe()
        channel.unsubscribe(queue)
        channel.publish(_snapshot(1))
        assert queue.empty()
        assert channel.subscriber_count == 0


class TestCancellationAndShutdown:

    @pytest.mark.asyncio
    async def test_cancel_is_advisory(self, registry, wait_terminal):
        started = asyncio.Event()

        async def work(progress, cancel):
            started.set()
            while not cancel.is_set():
                await asyncio.sleep(0.01)
            raise JobCancelled("Backup was cancelled")

        job_id = registry.submit(JobKind.BACKUP, "survival", work)
        await asyncio.wait_for(started.wait(), timeout=5)
        assert registry.cancel(job_id) is True

        snapshot = await wait_terminal(lambda: registry.get_status(job_id))
        assert snapshot.status is JobStatus.FAILED
        assert snapshot.error == "Backup was cancelled"
        assert registry.cancel(job_id) is False

    @pytest.mark.asyncio
    async def test_stop_fails_running_and_queued_jobs(self, wait_terminal):
        reg = JobRegistry(max_concurrency=1)
        await reg.start()
        transitions = {}
        reg.add_sink(lambda s: transitions.setdefault(s.id, []).append(s.status))
        started = asyncio.Event()

        async def blocked(progress, cancel):
            started.set()
            await asyncio.Event().wait()

        running_id = reg.submit(JobKind.BACKUP, "a", blocked)
        queued_id = reg.submit(JobKind.BACKUP, "b", blocked)
        await asyncio.wait_for(started.wait(), timeout=5)
        await reg.stop()

        running = reg.get_status(running_id)
        queued = reg.get_status(queued_id)
        assert running.status is JobStatus.FAILED
        assert running.error == "Job was cancelled"
        assert queued.status is JobStatus.FAILED
        assert queued.error == "Job dispatcher stopped before the job started"
        assert transitions[queued_id] == [JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.FAILED]
        assert transitions[running_id] == [JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.FAILED]
        assert [e.status for e in reg.recent_events(queued_id)] == [JobStatus.RUNNING, JobStatus.FAILED]
        assert not reg.is_running


class TestEviction:

    @pytest.mark.asyncio
    async def test_finished_jobs_expire_after_ttl(self, registry, wait_terminal):
        job_id = registry.submit(JobKind.BACKUP, "survival", lambda progress, cancel: None)
        snapshot = await wait_terminal(lambda: registry.get_status(job_id))

        assert registry.evict_expired(snapshot.completed_at + timedelta(minutes=30)) == 0
        assert registry.get_status(job_id) is not None
        assert registry.evict_expired(snapshot.completed_at + timedelta(hours=2)) == 1
        assert registry.get_status(job_id) is None

    @pytest.mark.asyncio
    async def test_running_jobs_are_never_evicted(self, registry):
        release = asyncio.Event()

        async def work(progress, cancel):
            await release.wait()

        job_id = registry.submit(JobKind.BACKUP, "survival", work)
        assert registry.evict_expired(utc_now() + timedelta(days=1)) == 0
        assert registry.get_status(job_id) is not None
        release.set()
