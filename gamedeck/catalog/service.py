"""Version catalog: merged upstream and local profiles plus jar downloads."""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from gamedeck.catalog.cache import CatalogCache
from gamedeck.catalog.models import VersionCatalogEntry
from gamedeck.catalog.profiles import LocalProfileStore
from gamedeck.catalog.sources import fetch_paper, fetch_vanilla, version_key
from gamedeck.errors import CatalogEntryNotFound, JobCancelled
from gamedeck.jobs.state import ProgressReporter

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_BYTES = 64 * 1024


class CatalogService:
    """Lists downloadable server builds and fetches their jars."""

    def __init__(
        self,
        profiles_dir: Path,
        client: httpx.AsyncClient,
        ttl_minutes: float = 10,
        vanilla_limit: int = 30,
        paper_limit: int = 20,
        caches: Optional[List[CatalogCache]] = None,
    ):
        self._profiles_dir = Path(profiles_dir)
        self._client = client
        self.local = LocalProfileStore(self._profiles_dir)
        if caches is None:
            ttl = ttl_minutes * 60
            caches = [
                CatalogCache("vanilla", lambda: fetch_vanilla(client, vanilla_limit), ttl),
                CatalogCache("paper", lambda: fetch_paper(client, paper_limit), ttl),
            ]
        self._caches = caches

    def jar_path(self, entry: VersionCatalogEntry) -> Path:
        return self._profiles_dir / entry.id / entry.filename

    async def list_entries(self) -> List[VersionCatalogEntry]:
        combined: Dict[str, VersionCatalogEntry] = {}
        for entry in self.local.load():
            combined[entry.id.lower()] = entry
        for cache in self._caches:
            for entry in await cache.get():
                combined[entry.id.lower()] = entry

        ordered = sorted(combined.values(), key=lambda e: e.id)
        ordered.sort(key=lambda e: version_key(e.version), reverse=True)
        ordered.sort(key=lambda e: e.source_group)
        return [
            entry.model_copy(update={"downloaded": self.jar_path(entry).exists()})
            for entry in ordered
        ]

    def refresh(self) -> None:
        """Force the next read to hit every upstream source again."""
        for cache in self._caches:
            cache.invalidate()

    async def get_entry(self, entry_id: str) -> VersionCatalogEntry:
        for entry in await self.list_entries():
            if entry.id.lower() == entry_id.lower():
                return entry
        raise CatalogEntryNotFound(entry_id)

    def download_work(self, entry: VersionCatalogEntry):
        """Job work that streams ``entry``'s jar into the profiles directory."""
        if not entry.download_url:
            raise ValueError(f"Profile '{entry.id}' does not have a download URL")
        target = self.jar_path(entry)
        client = self._client

        async def work(progress: ProgressReporter, cancel: threading.Event) -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            partial = target.with_name(target.name + ".part")
            progress.report(0, "Starting download")
            try:
                async with client.stream("GET", entry.download_url) as response:
                    response.raise_for_status()
                    total = int(response.headers.get("content-length") or 0)
                    received = 0
                    with open(partial, "wb") as fh:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_BYTES):
                            if cancel.is_set():
                                raise JobCancelled("Download was cancelled")
                            fh.write(chunk)
                            received += len(chunk)
                            if total:
                                progress.report(min(99, received * 100 // total), "Downloading")
                partial.replace(target)
            finally:
                partial.unlink(missing_ok=True)
            progress.report(100, "Complete")
            logger.info("Downloaded profile %s to %s", entry.id, target)

        return work
