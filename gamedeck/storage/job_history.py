"""Write-only mirror of job snapshots into the ``jobs`` table.

Used for history and audit only. Live state always comes from the job
registry; rows written here are never read back.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict

from gamedeck.jobs.models import JobSnapshot

logger = logging.getLogger(__name__)

JOBS_TABLE = "jobs"


def to_row(snapshot: JobSnapshot) -> Dict[str, Any]:
    return {
        "job_id": snapshot.id,
        "type": snapshot.kind.value,
        "server_name": snapshot.subject,
        "status": snapshot.status.value,
        "percentage": snapshot.percentage,
        "message": snapshot.message,
        "error": snapshot.error,
        "started_at": snapshot.started_at.isoformat(),
        "completed_at": snapshot.completed_at.isoformat() if snapshot.completed_at else None,
    }


class JobHistoryMirror:
    """Registry sink that upserts each status transition off the event loop.

    Writes go through a single worker thread so rows land in transition
    order.
    """

    def __init__(self, client):
        self._client = client
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="job-history")

    def __call__(self, snapshot: JobSnapshot) -> None:
        self._executor.submit(self.write, snapshot)

    def write(self, snapshot: JobSnapshot) -> bool:
        try:
            self._client.table(JOBS_TABLE).upsert(to_row(snapshot), on_conflict="job_id").execute()
        except Exception as exc:
            logger.error("Failed to persist job %s: %s", snapshot.id, exc)
            return False
        return True

    def close(self) -> None:
        self._executor.shutdown(wait=True)
