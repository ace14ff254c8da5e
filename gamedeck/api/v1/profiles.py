"""Version catalog: list server profiles and download their jars."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from gamedeck.api.deps import get_catalog, get_registry
from gamedeck.api.v1.jobs import JobSubmitResponse, queue_job
from gamedeck.catalog.models import VersionCatalogEntry
from gamedeck.catalog.service import CatalogService
from gamedeck.errors import CatalogEntryNotFound
from gamedeck.jobs.models import JobKind
from gamedeck.jobs.registry import JobRegistry

router = APIRouter()


@router.get("/profiles", response_model=List[VersionCatalogEntry])
async def list_profiles(catalog: CatalogService = Depends(get_catalog)):
    return await catalog.list_entries()


@router.post("/profiles/refresh", response_model=List[VersionCatalogEntry])
async def refresh_profiles(catalog: CatalogService = Depends(get_catalog)):
    """Drop cached upstream lists and fetch them again."""
    catalog.refresh()
    return await catalog.list_entries()


@router.post("/profiles/{profile_id}/download", response_model=JobSubmitResponse)
async def download_profile(
    profile_id: str,
    catalog: CatalogService = Depends(get_catalog),
    registry: JobRegistry = Depends(get_registry),
):
    try:
        entry = await catalog.get_entry(profile_id)
        work = catalog.download_work(entry)
    except CatalogEntryNotFound:
        raise HTTPException(status_code=404, detail="Profile not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return queue_job(registry.submit, JobKind.PROFILE_DOWNLOAD, entry.id, work)
