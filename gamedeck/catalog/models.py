"""Version catalog entry model."""

from typing import Optional

from pydantic import BaseModel


class VersionCatalogEntry(BaseModel):
    """One downloadable server build.

    ``downloaded`` is derived from the filesystem every time the catalog is
    listed and is never cached.
    """
    id: str
    source_group: str
    kind: str = "release"
    version: str
    download_url: Optional[str] = None
    release_timestamp: Optional[str] = None
    filename: str
    downloaded: bool = False
