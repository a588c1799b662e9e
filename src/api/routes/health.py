"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from api.models.responses import HealthResponse
from core.config import API_VERSION, DB_PATH

router = APIRouter(prefix="/v1")


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint for monitoring.

    Always 200 while the process is up; a missing request log database is
    reported but does not make the service unhealthy.
    """
    request_log_available = DB_PATH.exists()
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        request_log_available=request_log_available,
        timestamp=datetime.now(timezone.utc).isoformat(),
        error=None if request_log_available else "Request log database not initialized",
    )
