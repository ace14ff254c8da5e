"""Mutable per-job state with a sticky terminal status."""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from gamedeck.jobs.models import JobKind, JobSnapshot, JobStatus
from gamedeck.jobs.progress import ProgressChannel

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobState:
    """Single-writer, many-reader state of one tracked job.

    Every mutation happens under the job's own lock and publishes exactly one
    snapshot (with the next sequence number) while still holding it, so
    subscribers see events in mutation order. Once the status is terminal all
    further mutations are ignored.
    """

    snapshot_model: Type[JobSnapshot] = JobSnapshot

    def __init__(self, job_id: str, kind: JobKind, subject: str, channel: ProgressChannel):
        self._lock = threading.Lock()
        self.channel = channel
        self.cancel_event = threading.Event()
        self.job_id = job_id
        self.kind = kind
        self.subject = subject
        self.status = JobStatus.QUEUED
        self.percentage = 0
        self.message: Optional[str] = None
        self.error: Optional[str] = None
        self.started_at = utc_now()
        self.completed_at: Optional[datetime] = None
        self._sequence = 0

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return self.status.is_terminal

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            return self.snapshot_model(**self._fields())

    def _fields(self) -> Dict[str, Any]:
        return {
            "id": self.job_id,
            "kind": self.kind,
            "subject": self.subject,
            "status": self.status,
            "percentage": self.percentage,
            "message": self.message,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "sequence": self._sequence,
        }

    def _publish_locked(self) -> None:
        self._sequence += 1
        self.channel.publish(self.snapshot_model(**self._fields()))

    def mark_running(self) -> bool:
        with self._lock:
            if self.status is not JobStatus.QUEUED:
                return False
            self.status = JobStatus.RUNNING
            self.started_at = utc_now()
            self._publish_locked()
            return True

    def report(self, percentage: int, message: Optional[str] = None) -> bool:
        """Record progress. Percentage is clamped and never moves backwards."""
        with self._lock:
            if self.status.is_terminal:
                logger.debug("Ignoring progress for finished job %s", self.job_id)
                return False
            self.percentage = max(self.percentage, min(100, max(0, int(percentage))))
            if message is not None:
                self.message = message
            self._publish_locked()
            return True

    def mark_completed(self, message: Optional[str] = None) -> bool:
        with self._lock:
            if self.status.is_terminal:
                return False
            self.status = JobStatus.COMPLETED
            self.percentage = 100
            if message is not None:
                self.message = message
            self.completed_at = utc_now()
            self._publish_locked()
            return True

    def mark_failed(self, error: str, message: Optional[str] = None) -> bool:
        with self._lock:
            if self.status.is_terminal:
                return False
            self.status = JobStatus.FAILED
            self.error = error
            if message is not None:
                self.message = message
            self.completed_at = utc_now()
            self._publish_locked()
            return True


class ProgressReporter:
    """Progress handle handed to job work; only exposes reporting."""

    def __init__(self, state: JobState):
        self._state = state

    @property
    def job_id(self) -> str:
        return self._state.job_id

    def report(self, percentage: int, message: Optional[str] = None) -> None:
        self._state.report(percentage, message)
