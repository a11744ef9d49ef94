"""Health check endpoint for monitoring and load balancers."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reviewsync import __version__
from reviewsync.api.dependencies import get_services
from reviewsync.bootstrap import Services
from reviewsync.observability.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


class HealthCheckComponent(BaseModel):
    """Health status of a single component.

    Attributes:
        status: Component status (healthy, unhealthy)
        message: Optional status message or error details
    """

    status: str
    message: str | None = None


class HealthCheckResponse(BaseModel):
    """Overall health check response."""

    status: str
    components: dict[str, HealthCheckComponent]
    version: str = __version__


async def check_database_health(services: Services) -> HealthCheckComponent:
    """Check database connectivity.

    Returns:
        HealthCheckComponent with database status
    """
    try:
        await services.database.health_check()
        return HealthCheckComponent(status="healthy", message="Database connection successful")
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return HealthCheckComponent(status="unhealthy", message=f"Database error: {str(e)}")


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(services: Services = Depends(get_services)) -> JSONResponse:
    """Health check endpoint.

    Returns:
        200 OK if the database is reachable, 503 otherwise
    """
    database_health = await check_database_health(services)
    healthy = database_health.status == "healthy"

    response = HealthCheckResponse(
        status="healthy" if healthy else "unhealthy",
        components={"database": database_health},
    )
    logger.info("health_check_completed", overall_status=response.status)

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(),
    )
