"""Mapping from engine errors to HTTP responses."""

from fastapi import HTTPException, status

from core.errors import (
    InvalidIntake,
    InvalidTimestamp,
    RateLimited,
    RemoteApiError,
    SyncError,
    TimeOrderingError,
    UnknownTimezone,
    UnresolvedReference,
    WorkflowStateError,
)

CLIENT_ERRORS = (InvalidTimestamp, UnknownTimezone, TimeOrderingError, InvalidIntake, UnresolvedReference)


def status_for(exc: SyncError) -> int:
    if isinstance(exc, CLIENT_ERRORS):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, WorkflowStateError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, RateLimited):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(exc, RemoteApiError):
        if exc.status in (401, 403):
            return status.HTTP_401_UNAUTHORIZED
        if exc.status == 404:
            return status.HTTP_404_NOT_FOUND
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_detail(exc: SyncError) -> dict:
    """ErrorResponse-shaped body for an engine error."""
    detail = {
        "error": exc.message,
        "code": exc.code,
        "details": [f"{key}: {value}" for key, value in exc.details.items() if value is not None],
    }
    if isinstance(exc, RateLimited):
        detail["reset_at"] = exc.details["resetAt"]
    return detail


def to_http_exception(exc: SyncError) -> HTTPException:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"X-RateLimit-Reset": exc.details["resetAt"]}
    return HTTPException(status_code=status_for(exc), detail=error_detail(exc), headers=headers)
