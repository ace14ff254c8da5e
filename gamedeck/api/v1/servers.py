"""Per-server operations: backups, modpack installs and liveness."""

from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from gamedeck.api.deps import get_http_client, get_monitor, get_registry, get_settings
from gamedeck.api.sse import sse_response
from gamedeck.api.v1.jobs import JobSubmitResponse, queue_job
from gamedeck.config import Settings
from gamedeck.installs.modpack import ModFile, modpack_install_work
from gamedeck.jobs.models import InstallSnapshot, JobKind
from gamedeck.jobs.registry import JobRegistry
from gamedeck.monitoring.heartbeat import Heartbeat, ServerMonitor
from gamedeck.storage.servers import server_path
from gamedeck.work.backup import backup_work

router = APIRouter()


class ModpackInstallRequest(BaseModel):
    mods: List[ModFile]


def _existing_server(config: Settings, name: str) -> Path:
    try:
        path = server_path(Path(config.servers_dir), name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not path.is_dir():
        raise HTTPException(status_code=404, detail="Server not found")
    return path


@router.post("/servers/{name}/backups", response_model=JobSubmitResponse)
async def create_backup(
    name: str,
    registry: JobRegistry = Depends(get_registry),
    config: Settings = Depends(get_settings),
):
    server_dir = _existing_server(config, name)
    work = backup_work(server_dir, config.backups_dir)
    return queue_job(registry.submit, JobKind.BACKUP, name, work)


@router.post("/servers/{name}/modpacks/install", response_model=JobSubmitResponse)
async def install_modpack(
    name: str,
    request: ModpackInstallRequest,
    registry: JobRegistry = Depends(get_registry),
    config: Settings = Depends(get_settings),
    client=Depends(get_http_client),
):
    """Download every mod file into the server's ``mods`` folder as one job."""
    server_dir = _existing_server(config, name)
    try:
        work = modpack_install_work(request.mods, server_dir / "mods", client)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return queue_job(registry.submit_install, name, work)


@router.get("/installs/{job_id}", response_model=InstallSnapshot)
async def get_install(job_id: str, registry: JobRegistry = Depends(get_registry)):
    snapshot = registry.get_install_status(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Install job not found")
    return snapshot


@router.get("/installs/{job_id}/stream")
async def stream_install(job_id: str, registry: JobRegistry = Depends(get_registry)):
    if registry.get_install_status(job_id) is None:
        raise HTTPException(status_code=404, detail="Install job not found")
    return sse_response(registry.stream_status(job_id))


@router.get("/servers/{name}/ping", response_model=Heartbeat)
async def ping_server(name: str, monitor: ServerMonitor = Depends(get_monitor)):
    """One status probe; an unreachable server reports ``down``."""
    try:
        return await monitor.check(name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/servers/{name}/heartbeat")
async def server_heartbeat(name: str, monitor: ServerMonitor = Depends(get_monitor)):
    try:
        monitor.server_dir(name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return sse_response(monitor.heartbeat_stream(name))
