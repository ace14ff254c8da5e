"""Job API: poll, stream and cancel tracked jobs."""

from typing import Callable, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gamedeck.api.deps import get_registry
from gamedeck.api.sse import sse_response
from gamedeck.errors import JobNotFound
from gamedeck.jobs.models import JobSnapshot
from gamedeck.jobs.registry import JobRegistry

router = APIRouter()


class JobSubmitResponse(BaseModel):
    job_id: str
    status: str
    message: str


def queue_job(submit: Callable[..., str], *args) -> JobSubmitResponse:
    """Submit through the registry, mapping a stopped registry to 503."""
    try:
        job_id = submit(*args)
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return JobSubmitResponse(
        job_id=job_id,
        status="queued",
        message="Job submitted. Poll GET /api/v1/jobs/{id} or stream /api/v1/jobs/{id}/stream.",
    )


@router.get("/jobs", response_model=List[JobSnapshot])
async def list_jobs(registry: JobRegistry = Depends(get_registry)):
    return registry.list_jobs()


@router.get("/jobs/{job_id}", response_model=JobSnapshot)
async def get_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Current snapshot of a job."""
    snapshot = registry.get_status(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return snapshot


@router.get("/jobs/{job_id}/events", response_model=List[JobSnapshot])
async def get_job_events(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """The most recent events published for a job, oldest first."""
    try:
        return registry.recent_events(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")


@router.get("/jobs/{job_id}/stream")
async def stream_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Server-Sent Events: current snapshot, then every change until terminal."""
    if registry.get_status(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return sse_response(registry.stream_status(job_id))


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    try:
        requested = registry.cancel(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"job_id": job_id, "cancel_requested": requested}
