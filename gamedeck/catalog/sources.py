"""Upstream version sources: Mojang release manifest and the Paper API."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import httpx

from gamedeck.catalog.models import VersionCatalogEntry

logger = logging.getLogger(__name__)

MOJANG_VERSION_MANIFEST_URL = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"
PAPER_PROJECT_URL = "https://api.papermc.io/v2/projects/paper"


def version_key(version: Optional[str]) -> Tuple[int, ...]:
    """Sort key for dotted numeric versions; anything else sorts lowest."""
    if not version:
        return (0,)
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        return (0,)


def _release_time(value: Optional[str]) -> datetime:
    if value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.min.replace(tzinfo=timezone.utc)


async def fetch_vanilla(client: httpx.AsyncClient, limit: int = 30) -> List[VersionCatalogEntry]:
    """Newest vanilla releases that publish a dedicated server download."""
    try:
        response = await client.get(MOJANG_VERSION_MANIFEST_URL)
        response.raise_for_status()
        versions = response.json().get("versions")
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Failed to fetch vanilla profiles: %s", exc)
        return []
    if not isinstance(versions, list):
        return []

    releases = [
        v for v in versions
        if isinstance(v, dict) and v.get("type") == "release" and v.get("id") and v.get("url")
    ]
    releases.sort(key=lambda v: _release_time(v.get("releaseTime") or v.get("time")), reverse=True)

    results = []
    for version in releases[:limit]:
        try:
            detail = await client.get(version["url"])
            detail.raise_for_status()
            server = detail.json().get("downloads", {}).get("server", {})
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Failed to load vanilla version %s: %s", version["id"], exc)
            continue
        url = server.get("url") if isinstance(server, dict) else None
        if not url:
            continue
        results.append(VersionCatalogEntry(
            id=f"vanilla-{version['id']}",
            source_group="vanilla",
            version=version["id"],
            download_url=url,
            release_timestamp=version.get("releaseTime") or version.get("time"),
            filename=f"vanilla-{version['id']}.jar",
        ))
    return results


async def _latest_paper_build(client: httpx.AsyncClient, version: str) -> Optional[VersionCatalogEntry]:
    version_url = f"{PAPER_PROJECT_URL}/versions/{version}"
    response = await client.get(version_url)
    response.raise_for_status()
    builds = response.json().get("builds") or []
    if not builds:
        return None

    build = builds[-1]
    detail = await client.get(f"{version_url}/builds/{build}")
    detail.raise_for_status()
    doc = detail.json()
    filename = (
        doc.get("downloads", {}).get("application", {}).get("name")
        or f"paper-{version}-{build}.jar"
    )
    return VersionCatalogEntry(
        id=f"paper-{version}",
        source_group="paper",
        version=version,
        download_url=f"{version_url}/builds/{build}/downloads/{filename}",
        release_timestamp=doc.get("time"),
        filename=filename,
    )


async def fetch_paper(client: httpx.AsyncClient, limit: int = 20) -> List[VersionCatalogEntry]:
    """Latest build of the newest stable Paper versions."""
    try:
        response = await client.get(PAPER_PROJECT_URL)
        response.raise_for_status()
        versions = response.json().get("versions")
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Failed to fetch Paper profiles: %s", exc)
        return []
    if not isinstance(versions, list):
        return []

    # Pre-releases carry a suffix such as "1.21-pre1".
    stable = [v for v in versions if isinstance(v, str) and "-" not in v and version_key(v) != (0,)]
    stable.sort(key=version_key, reverse=True)

    results = []
    for version in stable[:limit]:
        try:
            entry = await _latest_paper_build(client, version)
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Failed to load Paper build for %s: %s", version, exc)
            continue
        if entry is not None:
            results.append(entry)
    return results
