"""Install job state that records every file it writes for rollback."""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional

from gamedeck.jobs.models import InstallSnapshot, JobKind
from gamedeck.jobs.progress import ProgressChannel
from gamedeck.jobs.state import JobState

logger = logging.getLogger(__name__)

# Share of the bar spent on the per-mod loop; the rest covers finalization.
MOD_LOOP_SHARE = 90


class InstallJobState(JobState):
    """State of a multi-step install (e.g. the N mods of a modpack).

    The work receives this object directly as its progress handle.
    ``record_installed_file`` must be called right after each successful
    write, before the next artifact is touched, so that
    ``installed_file_paths`` is always a complete, ordered list.
    """

    snapshot_model = InstallSnapshot

    def __init__(self, job_id: str, subject: str, channel: ProgressChannel,
                 kind: JobKind = JobKind.MODPACK_INSTALL):
        super().__init__(job_id, kind, subject, channel)
        self.total_mods = 0
        self.current_mod_index = 0
        self.current_mod_name: Optional[str] = None
        self._output_lines: List[str] = []
        self._installed_files: List[str] = []

    def _fields(self) -> Dict[str, Any]:
        fields = super()._fields()
        fields.update(
            total_mods=self.total_mods,
            current_mod_index=self.current_mod_index,
            current_mod_name=self.current_mod_name,
            output_lines=list(self._output_lines),
            installed_files=list(self._installed_files),
        )
        return fields

    def set_total_mods(self, total: int) -> None:
        with self._lock:
            if self.status.is_terminal:
                return
            self.total_mods = max(0, int(total))
            self._publish_locked()

    def update_progress(self, percentage: int, step: str) -> None:
        self.report(percentage, step)

    def update_mod_progress(self, index: int, mod_name: Optional[str]) -> None:
        with self._lock:
            if self.status.is_terminal:
                return
            self.current_mod_index = index
            self.current_mod_name = mod_name
            if self.total_mods > 0:
                computed = int(MOD_LOOP_SHARE * index / self.total_mods)
                self.percentage = max(self.percentage, min(100, computed))
            self._publish_locked()

    def append_output(self, line: str) -> None:
        with self._lock:
            self._output_lines.append(line)
            if not self.status.is_terminal:
                self._publish_locked()

    def record_installed_file(self, path: str) -> None:
        # Recorded even after a terminal status: the file exists on disk.
        with self._lock:
            self._installed_files.append(str(path))
            if not self.status.is_terminal:
                self._publish_locked()

    def installed_file_paths(self) -> List[str]:
        with self._lock:
            return list(self._installed_files)

    def output_lines(self) -> List[str]:
        with self._lock:
            return list(self._output_lines)

    def mark_completed(self, message: Optional[str] = "Installation complete") -> bool:
        return super().mark_completed(message)

    def mark_failed(self, error: str, message: Optional[str] = "Installation failed") -> bool:
        return super().mark_failed(error, message)


def rollback_installed_files(paths: Iterable[str]) -> List[str]:
    """Delete recorded install artifacts, newest first.

    Best effort: a file that cannot be removed is logged and skipped.
    Returns the paths that were actually removed.
    """
    removed = []
    for path in reversed(list(paths)):
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Rollback could not delete %s: %s", path, exc)
            continue
        removed.append(path)
    if removed:
        logger.info("Rolled back %d installed file(s)", len(removed))
    return removed
