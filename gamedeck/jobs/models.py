"""Job snapshot data models for tracked long-running operations."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobKind(str, Enum):
    BACKUP = "backup"
    MOD_INSTALL = "mod_install"
    MODPACK_INSTALL = "modpack_install"
    PROFILE_DOWNLOAD = "profile_download"
    IMPORT = "import"


class JobSnapshot(BaseModel):
    """Immutable view of a job at one point of its life.

    Published to pollers and stream subscribers; ``sequence`` increases by one
    for every published event of the same job.
    """
    id: str
    kind: JobKind
    subject: str
    status: JobStatus = JobStatus.QUEUED
    percentage: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    sequence: int = 0

    model_config = {"frozen": True}

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class InstallSnapshot(JobSnapshot):
    """Snapshot of a multi-step install, with the rollback bookkeeping."""
    total_mods: int = 0
    current_mod_index: int = 0
    current_mod_name: Optional[str] = None
    output_lines: List[str] = Field(default_factory=list)
    installed_files: List[str] = Field(default_factory=list)
