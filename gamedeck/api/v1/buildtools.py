"""BuildTools runs: start, inspect, tail and cancel."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gamedeck.api.deps import get_supervisor
from gamedeck.api.sse import sse_response
from gamedeck.buildtools.models import BuildRunSnapshot
from gamedeck.buildtools.supervisor import ProcessSupervisor
from gamedeck.errors import InvalidRunRequest, RunNotFound

router = APIRouter()


class BuildRunRequest(BaseModel):
    group: str
    version: str


@router.post("/buildtools", response_model=BuildRunSnapshot)
async def start_buildtools(
    request: BuildRunRequest,
    supervisor: ProcessSupervisor = Depends(get_supervisor),
):
    """Validate the request and start a BuildTools compile in the background."""
    try:
        return await supervisor.start_run(request.group, request.version)
    except InvalidRunRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/buildtools", response_model=List[BuildRunSnapshot])
async def list_buildtools(supervisor: ProcessSupervisor = Depends(get_supervisor)):
    return supervisor.list_runs()


@router.get("/buildtools/{run_id}", response_model=BuildRunSnapshot)
async def get_buildtools(run_id: str, supervisor: ProcessSupervisor = Depends(get_supervisor)):
    run = supervisor.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="BuildTools run not found")
    return run


@router.get("/buildtools/{run_id}/stream")
async def stream_buildtools(run_id: str, supervisor: ProcessSupervisor = Depends(get_supervisor)):
    """Server-Sent Events with every log line of the run, from the start."""
    if supervisor.get_run(run_id) is None:
        raise HTTPException(status_code=404, detail="BuildTools run not found")
    return sse_response(supervisor.stream_log(run_id))


@router.post("/buildtools/{run_id}/cancel")
async def cancel_buildtools(run_id: str, supervisor: ProcessSupervisor = Depends(get_supervisor)):
    try:
        requested = supervisor.cancel_run(run_id)
    except RunNotFound:
        raise HTTPException(status_code=404, detail="BuildTools run not found")
    return {"run_id": run_id, "cancel_requested": requested}
