"""Server backup work: zip a server directory into the backups folder."""

import logging
import threading
import zipfile
from datetime import datetime, timezone
from pathlib import Path

from gamedeck.errors import JobCancelled
from gamedeck.jobs.state import ProgressReporter

logger = logging.getLogger(__name__)


def backup_work(server_dir: Path, backups_dir: Path):
    """Build synchronous job work; it runs in the registry's thread executor."""
    server_dir = Path(server_dir)
    backups_dir = Path(backups_dir)
    if not server_dir.is_dir():
        raise ValueError(f"Server directory not found: {server_dir}")

    def work(progress: ProgressReporter, cancel: threading.Event) -> None:
        files = sorted(p for p in server_dir.rglob("*") if p.is_file())
        backups_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        archive = backups_dir / f"{server_dir.name}-{stamp}.zip"

        progress.report(0, f"Archiving {len(files)} file(s)")
        try:
            with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
                for done, path in enumerate(files, start=1):
                    if cancel.is_set():
                        raise JobCancelled("Backup was cancelled")
                    relative = path.relative_to(server_dir)
                    zf.write(path, relative.as_posix())
                    progress.report(done * 99 // len(files), f"Archived {relative.as_posix()}")
        except BaseException:
            archive.unlink(missing_ok=True)
            raise

        progress.report(100, f"Backup written to {archive.name}")
        logger.info("Backed up %s to %s", server_dir, archive)

    return work
