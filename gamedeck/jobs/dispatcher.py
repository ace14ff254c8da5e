"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from gamedeck.jobs.models import JobKind, JobSnapshot


class JobDispatcher(ABC):
    """Abstract interface for submitting and observing tracked jobs."""

    @abstractmethod
    def submit(self, kind: JobKind, subject: str, work) -> str:
        """Register a job and schedule its work. Returns job_id without waiting."""
        ...

    @abstractmethod
    def get_status(self, job_id: str) -> Optional[JobSnapshot]:
        """Get the current snapshot of a job."""
        ...

    @abstractmethod
    def stream_status(self, job_id: str) -> AsyncIterator[JobSnapshot]:
        """Current snapshot, then every later event until the terminal one."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
