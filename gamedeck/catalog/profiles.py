"""Locally known profiles (BuildTools outputs and built-in defaults)."""

import json
import logging
import threading
from pathlib import Path
from typing import List

from gamedeck.catalog.models import VersionCatalogEntry

logger = logging.getLogger(__name__)

PROFILES_FILE = "profiles.json"

DEFAULT_PROFILES = [
    VersionCatalogEntry(
        id="vanilla-1.20.4",
        source_group="vanilla",
        version="1.20.4",
        download_url="https://piston-data.mojang.com/v1/objects/8dd1a28015f51b1803213892b50b7b4fc76e594d/server.jar",
        filename="vanilla-1.20.4.jar",
    ),
    VersionCatalogEntry(
        id="vanilla-1.19.4",
        source_group="vanilla",
        version="1.19.4",
        download_url="https://piston-data.mojang.com/v1/objects/8f3112a1049751cc472ec13e397eade5336ca7ae/server.jar",
        filename="vanilla-1.19.4.jar",
    ),
    VersionCatalogEntry(
        id="paper-1.20.4",
        source_group="paper",
        version="1.20.4",
        download_url="https://api.papermc.io/v2/projects/paper/versions/1.20.4/builds/496/downloads/paper-1.20.4-496.jar",
        filename="paper-1.20.4.jar",
    ),
]


class LocalProfileStore:
    """JSON file of profiles that do not come from an upstream API."""

    def __init__(self, profiles_dir: Path):
        self._profiles_dir = Path(profiles_dir)
        self._path = self._profiles_dir / PROFILES_FILE
        self._lock = threading.Lock()

    def load(self) -> List[VersionCatalogEntry]:
        if not self._path.exists():
            return [entry.model_copy() for entry in DEFAULT_PROFILES]
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return [VersionCatalogEntry.model_validate(item) for item in raw]

    def save(self, entries: List[VersionCatalogEntry]) -> None:
        self._profiles_dir.mkdir(parents=True, exist_ok=True)
        payload = [entry.model_dump(exclude={"downloaded"}) for entry in entries]
        tmp = self._path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(self._path)

    def upsert(self, entry: VersionCatalogEntry) -> None:
        with self._lock:
            entries = [e for e in self.load() if e.id.lower() != entry.id.lower()]
            entries.append(entry)
            self.save(entries)
        logger.info("Saved profile %s", entry.id)
