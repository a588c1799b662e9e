"""SQLite request logging for API."""

import logging
import sqlite3
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from fastapi import HTTPException, Request, status

from api.errors import to_http_exception
from api.models.responses import ErrorCodes
from core.database import get_connection, prune_request_logs
from core.errors import SyncError
from core.ratelimit import credential_key

logger = logging.getLogger(__name__)


@dataclass
class RequestLog:
    """Captured request/response data for logging."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    endpoint: str = ""
    method: str = ""
    client_ip: str | None = None
    credential_key: str | None = None  # sha256 of the API key, never the key
    workspace_id: str | None = None
    status_code: int = 0
    error_code: str | None = None
    error_message: str | None = None
    processing_time_ms: int = 0
    items_total: int | None = None
    items_failed: int | None = None
    details: list[tuple[str, str]] = field(default_factory=list)  # (type, message)


def log_request(log: RequestLog) -> None:
    """Write request log to SQLite database and trim the credential's history."""
    conn = get_connection()
    try:
        cursor = conn.cursor()

        cursor.execute(
            """
            INSERT INTO api_requests (
                request_id, timestamp, endpoint, method, client_ip,
                credential_key, workspace_id, status_code, error_code,
                error_message, processing_time_ms, items_total, items_failed
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                log.request_id,
                log.timestamp,
                log.endpoint,
                log.method,
                log.client_ip,
                log.credential_key,
                log.workspace_id,
                log.status_code,
                log.error_code,
                log.error_message,
                log.processing_time_ms,
                log.items_total,
                log.items_failed,
            ),
        )

        for detail_type, message in log.details:
            cursor.execute(
                """
                INSERT INTO api_request_details (request_id, detail_type, message)
                VALUES (?, ?, ?)
            """,
                (log.request_id, detail_type, message),
            )

        conn.commit()
        if log.credential_key:
            prune_request_logs(conn, log.credential_key)
    finally:
        conn.close()


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@contextmanager
def track_request(
    request: Request, api_key: str | None = None, workspace_id: str | None = None
) -> Iterator[RequestLog]:
    """
    Record one API request in the request log.

    Engine errors raised inside the block are turned into HTTPExceptions
    carrying the standard error body; the log row is written either way.
    """
    start_time = time.time()
    request_log = RequestLog(
        endpoint=request.url.path,
        method=request.method,
        client_ip=get_client_ip(request),
        credential_key=credential_key(api_key) if api_key else None,
        workspace_id=workspace_id,
    )

    try:
        yield request_log
        if not request_log.status_code:
            request_log.status_code = status.HTTP_200_OK

    except HTTPException as e:
        request_log.status_code = e.status_code
        if isinstance(e.detail, dict):
            request_log.error_code = e.detail.get("code")
            request_log.error_message = e.detail.get("error")
            for detail in e.detail.get("details", []):
                request_log.details.append(("validation_error", detail))
        else:
            request_log.error_message = str(e.detail)
        raise

    except SyncError as e:
        http_error = to_http_exception(e)
        request_log.status_code = http_error.status_code
        request_log.error_code = e.code
        request_log.error_message = e.message
        raise http_error from e

    except Exception as e:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        request_log.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        request_log.error_code = ErrorCodes.INTERNAL_ERROR
        request_log.error_message = str(e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "Internal server error",
                "code": ErrorCodes.INTERNAL_ERROR,
                "details": [],
            },
        ) from e

    finally:
        request_log.processing_time_ms = int((time.time() - start_time) * 1000)
        try:
            log_request(request_log)
        except sqlite3.Error as e:
            # A missing or locked log database never fails the request
            logger.warning("Could not write request log: %s", e)
