"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import get_api_rate_limiter
from api.errors import error_detail, status_for
from api.models.responses import ErrorCodes, ErrorResponse
from api.routes import (
    account_router,
    cleanup_router,
    health_router,
    logs_router,
    references_router,
    time_entries_router,
)
from core.config import API_DEBUG, API_VERSION, DB_PATH, RATE_LIMIT_STALE_SECONDS
from core.errors import SyncError
from core.ratelimit import get_rate_limiter

logger = logging.getLogger(__name__)


async def sweep_rate_limiters(interval: float = RATE_LIMIT_STALE_SECONDS):
    """Periodically drop expired rate-limit windows so the maps stay bounded."""
    while True:
        await asyncio.sleep(interval)
        dropped = get_api_rate_limiter().sweep() + get_rate_limiter().sweep()
        if dropped:
            logger.debug("Swept %d expired rate-limit windows", dropped)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    if not DB_PATH.exists():
        logger.warning("Request log database not found at %s (run scripts/init_db.py)", DB_PATH)

    sweeper = asyncio.create_task(sweep_rate_limiters())
    yield

    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="Clockify Time Sync API",
    description="REST API for bulk time entry intake, verification and cleanup against Clockify",
    version=API_VERSION,
    debug=API_DEBUG,
    lifespan=lifespan,
)

# CORS middleware (for development)
if API_DEBUG:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    """Engine errors that escape a route without being logged."""
    return JSONResponse(status_code=status_for(exc), content=error_detail(exc))


# Global exception handler for unexpected errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with standard error format."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            code=ErrorCodes.INTERNAL_ERROR,
            details=[],
        ).model_dump(),
    )


# Include routers
app.include_router(health_router)
app.include_router(account_router)
app.include_router(references_router)
app.include_router(cleanup_router)
app.include_router(time_entries_router)
app.include_router(logs_router)


# Entry point for uvicorn
if __name__ == "__main__":
    import uvicorn

    from core.config import API_HOST, API_PORT

    uvicorn.run(
        "api.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=API_DEBUG,
    )
