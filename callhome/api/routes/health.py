"""
Health check endpoints
"""

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
import structlog

from callhome import __version__

logger = structlog.get_logger(__name__)
router = APIRouter()

SERVICE_NAME = "Callhome Telemetry API"

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__
    }

@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check with repository and geo database status"""
    repositories = {}
    for name, repository in request.app.state.repositories.items():
        healthy = await run_in_threadpool(repository.ping)
        repositories[name] = "connected" if healthy else "disconnected"

    geo_healthy = request.app.state.resolver.healthcheck()
    if not geo_healthy:
        logger.error("Geo database health check failed")

    healthy = geo_healthy and all(status == "connected" for status in repositories.values())
    return {
        "status": "healthy" if healthy else "unhealthy",
        "repositories": repositories,
        "geo_database": "available" if geo_healthy else "unavailable",
        "service": SERVICE_NAME,
        "version": __version__
    }
