"""Health check endpoints for monitoring and orchestration."""
from fastapi import APIRouter, status, Response
from app.core.config import settings
from app.core.database import db_manager
from app.schemas.response import ApiResponse

router = APIRouter()


@router.get("/health", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def health_check(response: Response):
    """
    Report whether the service can reach its storage backend.

    Returns 503 when AUTH_STORE=postgres and the database does not answer.
    """
    if settings.AUTH_STORE == "memory":
        database = "not_used"
    else:
        database = "healthy" if await db_manager.check_connection() else "unhealthy"

    healthy = database != "unhealthy"
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ApiResponse(
        success=healthy,
        message="System operational" if healthy else "Database unavailable",
        data={
            "status": "ok" if healthy else "degraded",
            "environment": settings.ENVIRONMENT,
            "store": settings.AUTH_STORE,
            "database": database,
        }
    )
