"""Request log endpoint."""

import asyncio
import sqlite3

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.dependencies import enforce_rate_limit
from api.models.responses import ErrorCodes, RequestLogEntry, RequestLogListResponse
from core.config import MAX_LOGS_PER_CREDENTIAL
from core.database import fetch_request_logs, get_connection
from core.ratelimit import credential_key

router = APIRouter(prefix="/v1")


def _read_logs(key: str, limit: int) -> list[dict]:
    conn = get_connection()
    try:
        return fetch_request_logs(conn, key, limit)
    finally:
        conn.close()


@router.get("/logs", response_model=RequestLogListResponse)
async def list_logs(
    limit: int = Query(100, ge=1, le=MAX_LOGS_PER_CREDENTIAL),
    api_key: str = Depends(enforce_rate_limit),
):
    """Newest-first request history for the calling credential only."""
    try:
        logs = await asyncio.to_thread(_read_logs, credential_key(api_key), limit)
    except sqlite3.Error as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Request log unavailable",
                "code": ErrorCodes.INTERNAL_ERROR,
                "details": [str(e)],
            },
        ) from e
    return RequestLogListResponse(logs=[RequestLogEntry(**log) for log in logs], count=len(logs))
