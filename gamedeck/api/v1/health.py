"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Request

from gamedeck.jobs.models import JobStatus

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service liveness plus job and BuildTools counters."""
    state = request.app.state
    registry = getattr(state, "registry", None)
    supervisor = getattr(state, "supervisor", None)

    jobs = {status.value: 0 for status in JobStatus}
    if registry is not None:
        for snapshot in registry.list_jobs():
            jobs[snapshot.status.value] += 1

    runs = supervisor.list_runs() if supervisor is not None else []
    return {
        "status": "healthy" if registry is not None and registry.is_running else "starting",
        "jobs": jobs,
        "buildtools_runs_active": sum(1 for run in runs if not run.status.is_terminal),
        "job_mirror": getattr(state, "job_mirror", None) is not None,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
