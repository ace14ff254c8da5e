"""FastAPI dependencies resolving the services built in the app lifespan."""

from fastapi import HTTPException, Request

from gamedeck.buildtools.supervisor import ProcessSupervisor
from gamedeck.catalog.service import CatalogService
from gamedeck.config import Settings
from gamedeck.jobs.registry import JobRegistry
from gamedeck.monitoring.heartbeat import ServerMonitor


def _service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} not initialized")
    return service


def get_registry(request: Request) -> JobRegistry:
    return _service(request, "registry", "Job registry")


def get_supervisor(request: Request) -> ProcessSupervisor:
    return _service(request, "supervisor", "BuildTools supervisor")


def get_catalog(request: Request) -> CatalogService:
    return _service(request, "catalog", "Version catalog")


def get_monitor(request: Request) -> ServerMonitor:
    return _service(request, "monitor", "Server monitor")


def get_http_client(request: Request):
    return _service(request, "http_client", "HTTP client")


def get_settings(request: Request) -> Settings:
    return _service(request, "settings", "Settings")
