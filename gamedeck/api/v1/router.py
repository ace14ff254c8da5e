"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from gamedeck.api.v1.health import router as health_router
from gamedeck.api.v1.jobs import router as jobs_router
from gamedeck.api.v1.servers import router as servers_router
from gamedeck.api.v1.buildtools import router as buildtools_router
from gamedeck.api.v1.profiles import router as profiles_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(servers_router, tags=["servers"])
v1_router.include_router(buildtools_router, tags=["buildtools"])
v1_router.include_router(profiles_router, tags=["profiles"])
