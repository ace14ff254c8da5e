"""Modpack install work: download every mod file, roll back on failure."""

import logging
import os
import threading
from pathlib import Path
from typing import List

import httpx
from pydantic import BaseModel

from gamedeck.errors import JobCancelled
from gamedeck.jobs.install_state import InstallJobState, rollback_installed_files

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_BYTES = 64 * 1024


class ModFile(BaseModel):
    """A mod file already resolved by the mod registry client."""
    name: str
    download_url: str
    filename: str


def _validate(mods: List[ModFile]) -> None:
    if not mods:
        raise ValueError("Modpack has no mod files to install")
    for mod in mods:
        if not mod.filename or os.path.basename(mod.filename) != mod.filename or mod.filename in (".", ".."):
            raise ValueError(f"Invalid mod filename: {mod.filename!r}")


async def _download(client: httpx.AsyncClient, url: str, partial: Path) -> int:
    written = 0
    async with client.stream("GET", url) as response:
        response.raise_for_status()
        with open(partial, "wb") as fh:
            async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_BYTES):
                fh.write(chunk)
                written += len(chunk)
    return written


def modpack_install_work(mods: List[ModFile], mods_dir: Path, client: httpx.AsyncClient):
    """Build the work for ``JobRegistry.submit_install``.

    Validation happens here, before a job exists. Each file lands under a
    temporary name and is renamed into place; its path is recorded right
    after the rename so a rollback never misses it. Files that were already
    present are left alone and not recorded.
    """
    _validate(mods)
    mods_dir = Path(mods_dir)

    async def work(state: InstallJobState, cancel: threading.Event) -> None:
        mods_dir.mkdir(parents=True, exist_ok=True)
        state.append_output(f"Installing {len(mods)} mod(s) into {mods_dir}")
        state.set_total_mods(len(mods))
        try:
            for index, mod in enumerate(mods):
                if cancel.is_set():
                    raise JobCancelled("Installation was cancelled")
                state.update_mod_progress(index, mod.name)
                target = mods_dir / mod.filename
                if target.exists():
                    state.append_output(f"Skipping {mod.name}: {mod.filename} already present")
                    continue

                state.append_output(f"Downloading {mod.name} ({mod.filename})")
                partial = target.with_name(target.name + ".part")
                try:
                    size = await _download(client, mod.download_url, partial)
                    os.replace(partial, target)
                    state.record_installed_file(str(target))
                finally:
                    partial.unlink(missing_ok=True)
                state.append_output(f"Installed {mod.filename} ({size} bytes)")

            state.update_mod_progress(len(mods), None)
            state.update_progress(95, "Finalizing installation")
        except BaseException:
            removed = rollback_installed_files(state.installed_file_paths())
            state.append_output(f"Rolled back {len(removed)} installed file(s)")
            raise

    return work
