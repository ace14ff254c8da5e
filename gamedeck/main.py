"""gamedeck backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gamedeck.api.v1.health import router as health_root_router
from gamedeck.api.v1.router import v1_router
from gamedeck.buildtools.supervisor import ProcessSupervisor
from gamedeck.catalog.service import CatalogService
from gamedeck.config import Settings, settings
from gamedeck.db.supabase_client import get_supabase, supabase_configured
from gamedeck.jobs.registry import JobRegistry
from gamedeck.logging_config import configure_logging
from gamedeck.monitoring.heartbeat import ServerMonitor
from gamedeck.storage.job_history import JobHistoryMirror

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build every service, publish it on ``app.state``, tear down on exit."""
    config: Settings = app.state.settings
    configure_logging(config.log_level)
    logger.info("Starting gamedeck backend on port %d", config.port)
    logger.info("Data dir: %s", config.data_dir)
    logger.info("Servers dir: %s", config.servers_dir)

    client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, follow_redirects=True)

    registry = JobRegistry(
        max_concurrency=config.job_max_concurrency,
        result_ttl_hours=config.job_result_ttl_hours,
        stream_queue_size=config.job_stream_queue_size,
        event_history=config.job_event_history,
    )
    mirror = None
    if supabase_configured(config):
        mirror = JobHistoryMirror(get_supabase(config))
        registry.add_sink(mirror)
        logger.info("Mirroring job history to Supabase")
    await registry.start()

    catalog = CatalogService(
        config.profiles_dir,
        client,
        ttl_minutes=config.catalog_ttl_minutes,
        vanilla_limit=config.vanilla_version_limit,
        paper_limit=config.paper_version_limit,
    )
    supervisor = ProcessSupervisor(
        config.profiles_dir,
        config.logs_dir,
        catalog.local,
        client=client,
        java_executable=config.java_executable,
        buildtools_url=config.buildtools_jar_url,
        poll_interval=config.buildtools_poll_interval,
        result_ttl_hours=config.job_result_ttl_hours,
    )
    monitor = ServerMonitor(
        config.servers_dir,
        timeout=config.ping_timeout_seconds,
        interval=config.heartbeat_interval_seconds,
    )

    app.state.http_client = client
    app.state.registry = registry
    app.state.catalog = catalog
    app.state.supervisor = supervisor
    app.state.monitor = monitor
    app.state.job_mirror = mirror

    try:
        yield
    finally:
        logger.info("Shutting down gamedeck backend")
        await supervisor.stop()
        await registry.stop()
        if mirror is not None:
            mirror.close()
        await client.aclose()


def create_app(config: Optional[Settings] = None) -> FastAPI:
    app = FastAPI(
        title="gamedeck",
        description="Job supervision and live status backend for a game-server dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config or settings

    # CORS: dashboard dev servers and any configured origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    return app


app = create_app()


def run() -> None:
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
