"""
Health Check Endpoints
======================

Provides health and status endpoints for monitoring.
"""

from fastapi import APIRouter, Depends, Response

from docgate.database import ping_db
from docgate.dependencies import Services, get_services
from docgate.models.db_models import utcnow
from docgate.models.schemas import HealthResponse


router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check the health status of the API and its database.",
)
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    database_ok = await ping_db(services.engine)

    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=services.settings.api_version,
        database="healthy" if database_ok else "unreachable",
        timestamp=utcnow(),
    )


@router.get(
    "/",
    summary="Root",
    description="API root endpoint with basic information.",
)
async def root(services: Services = Depends(get_services)):
    """Root endpoint with API information."""
    settings = services.settings
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "docs": "/docs",
        "health": "/health",
    }


@router.get(
    "/ready",
    summary="Readiness Check",
    description="Kubernetes-style readiness probe.",
)
async def readiness_check(response: Response, services: Services = Depends(get_services)):
    """
    Readiness check for container orchestration.

    Returns 200 if ready to accept traffic, 503 otherwise.
    """
    if not await ping_db(services.engine):
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unreachable"}

    if not services.recorder.running:
        response.status_code = 503
        return {"status": "not_ready", "reason": "usage_recorder_stopped"}

    return {"status": "ready"}


@router.get(
    "/live",
    summary="Liveness Check",
    description="Kubernetes-style liveness probe.",
)
async def liveness_check():
    return {"status": "alive"}
