"""
Error taxonomy for the sync engine.

Validation errors and single-row remote errors are row-local: loops collect
them instead of letting them escape. Directory listing failures during
verification propagate to the operator.
"""

from datetime import datetime, timezone
from typing import Any


class ErrorCodes:
    """Error code constants."""

    INVALID_TIMESTAMP = "INVALID_TIMESTAMP"
    UNKNOWN_TIMEZONE = "UNKNOWN_TIMEZONE"
    TIME_ORDERING = "TIME_ORDERING"
    UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
    RATE_LIMITED = "RATE_LIMITED"
    REMOTE_API_ERROR = "REMOTE_API_ERROR"
    PARTIAL_BATCH_FAILURE = "PARTIAL_BATCH_FAILURE"
    INVALID_INTAKE = "INVALID_INTAKE"
    WORKFLOW_STATE = "WORKFLOW_STATE"
    SYNC_ERROR = "SYNC_ERROR"


class SyncError(Exception):
    """Base exception for the sync engine."""

    code = ErrorCodes.SYNC_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class InvalidTimestamp(SyncError):
    """Timestamp string is malformed, not a real date, or skipped by DST."""

    code = ErrorCodes.INVALID_TIMESTAMP

    def __init__(self, value: Any, reason: str = "does not match YYYY-MM-DDTHH:mm"):
        self.value = value
        super().__init__(f"Invalid timestamp {value!r}: {reason}", {"value": str(value)})


class UnknownTimezone(SyncError):
    code = ErrorCodes.UNKNOWN_TIMEZONE

    def __init__(self, zone: Any):
        self.zone = zone
        super().__init__(f"Unknown timezone {zone!r}", {"zone": str(zone)})


class TimeOrderingError(SyncError):
    code = ErrorCodes.TIME_ORDERING

    def __init__(self, start: datetime, end: datetime):
        self.start = start
        self.end = end
        super().__init__(
            f"Start {start.isoformat()} must be before end {end.isoformat()}",
            {"start": start.isoformat(), "end": end.isoformat()},
        )


class UnresolvedReference(SyncError):
    """A project/task/tag name has no match and creation was not requested."""

    code = ErrorCodes.UNRESOLVED_REFERENCE

    def __init__(self, kind: str, name: str, scope: str | None = None):
        self.kind = kind
        self.name = name
        self.scope = scope
        where = f" in project {scope}" if scope else ""
        super().__init__(
            f"No {kind} named {name!r}{where}",
            {"kind": kind, "name": name, "scope": scope},
        )


class RateLimited(SyncError):
    code = ErrorCodes.RATE_LIMITED

    def __init__(self, reset_at: float):
        self.reset_at = reset_at
        reset_iso = datetime.fromtimestamp(reset_at, tz=timezone.utc).isoformat()
        super().__init__(
            f"Rate limit exceeded, try again at {reset_iso}",
            {"resetAt": reset_iso},
        )


class RemoteApiError(SyncError):
    """Upstream 4xx/5xx or transport failure (status 0)."""

    code = ErrorCodes.REMOTE_API_ERROR

    def __init__(self, status: int, message: str, method: str = "", path: str = ""):
        self.status = status
        self.remote_message = message
        self.method = method
        self.path = path
        super().__init__(
            f"Clockify API Error {status}: {message}",
            {"status": status, "method": method, "path": path},
        )


class PartialBatchFailure(SyncError):
    """Informational: a batch finished with some items failed."""

    code = ErrorCodes.PARTIAL_BATCH_FAILURE

    def __init__(self, result):
        self.result = result
        super().__init__(
            f"{len(result.failed)} of {result.total} items failed",
            {
                "succeeded": len(result.succeeded),
                "failed": [{"item": str(f.item), "reason": f.reason} for f in result.failed],
                "skipped": [{"item": str(s.item), "reason": s.reason} for s in result.skipped],
            },
        )


class InvalidIntake(SyncError):
    code = ErrorCodes.INVALID_INTAKE


class WorkflowStateError(SyncError):
    code = ErrorCodes.WORKFLOW_STATE
