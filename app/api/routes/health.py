"""Health check API endpoints."""

from fastapi import APIRouter

from app.config import settings
from app.database.client import db_client
from app.schemas.health import DetailedHealthResponse, HealthCheckResponse

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and healthy",
    operation_id="get_api_health_status",
)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint."""
    db_health = await db_client.health_check()

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    tags=["Health"],
    operation_id="get_api_detailed_health_status",
)
async def detailed_health() -> DetailedHealthResponse:
    """Detailed health check including dependencies."""
    db_health = await db_client.health_check()
    return DetailedHealthResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health,
    )
