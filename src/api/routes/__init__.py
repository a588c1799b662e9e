"""API route modules."""

from .account import router as account_router
from .cleanup import router as cleanup_router
from .health import router as health_router
from .logs import router as logs_router
from .references import router as references_router
from .time_entries import router as time_entries_router

__all__ = [
    "account_router",
    "cleanup_router",
    "health_router",
    "logs_router",
    "references_router",
    "time_entries_router",
]
