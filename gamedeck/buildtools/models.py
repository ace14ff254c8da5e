"""BuildTools run data models."""

import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from gamedeck.errors import InvalidRunRequest
from gamedeck.jobs.models import JobStatus

# group -> BuildTools --compile target
COMPILE_TARGETS = {
    "spigot": "SPIGOT",
    "craftbukkit": "CRAFTBUKKIT",
    "bukkit": "CRAFTBUKKIT",
}

_VERSION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class BuildRequest:
    group: str
    version: str
    compile_target: str

    @property
    def profile_id(self) -> str:
        return f"{self.group}-{self.version}"

    @property
    def artifact_name(self) -> str:
        """Jar name BuildTools is expected to produce."""
        prefix = "spigot" if self.compile_target == "SPIGOT" else "craftbukkit"
        return f"{prefix}-{self.version}.jar"

    @property
    def target_name(self) -> str:
        return f"{self.profile_id}.jar"


def normalize_request(group: Optional[str], version: Optional[str]) -> BuildRequest:
    """Validate a run request before anything is created or spawned."""
    if not group or not group.strip():
        raise InvalidRunRequest("BuildTools group is required")
    if not version or not version.strip():
        raise InvalidRunRequest("BuildTools version is required")

    normalized_group = group.strip().lower()
    normalized_version = version.strip()
    compile_target = COMPILE_TARGETS.get(normalized_group)
    if compile_target is None:
        raise InvalidRunRequest(f"Unsupported BuildTools group: {group}")
    if not _VERSION_PATTERN.match(normalized_version):
        raise InvalidRunRequest(f"Invalid BuildTools version: {version}")
    return BuildRequest(normalized_group, normalized_version, compile_target)


class BuildRunSnapshot(BaseModel):
    run_id: str
    profile_id: str
    group: str
    version: str
    status: JobStatus
    log_path: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class LogEntry(BaseModel):
    timestamp: datetime
    line: str
    status: JobStatus


class BuildRunState:
    """Mutable state of one run; terminal status is sticky."""

    def __init__(self, run_id: str, request: BuildRequest, log_path: str):
        self._lock = threading.Lock()
        self.run_id = run_id
        self.request = request
        self.log_path = log_path
        self.status = JobStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None
        self.error: Optional[str] = None
        self.cancel_requested = False

    @property
    def is_terminal(self) -> bool:
        with self._lock:
            return self.status.is_terminal

    def mark_completed(self) -> bool:
        return self._finish(JobStatus.COMPLETED, None)

    def mark_failed(self, error: str) -> bool:
        return self._finish(JobStatus.FAILED, error)

    def _finish(self, status: JobStatus, error: Optional[str]) -> bool:
        with self._lock:
            if self.status.is_terminal:
                return False
            self.status = status
            self.error = error
            self.completed_at = datetime.now(timezone.utc)
            return True

    def snapshot(self) -> BuildRunSnapshot:
        with self._lock:
            return BuildRunSnapshot(
                run_id=self.run_id,
                profile_id=self.request.profile_id,
                group=self.request.group,
                version=self.request.version,
                status=self.status,
                log_path=self.log_path,
                started_at=self.started_at,
                completed_at=self.completed_at,
                error=self.error,
            )
