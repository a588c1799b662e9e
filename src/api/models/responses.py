"""Pydantic response models for API endpoints."""

from pydantic import BaseModel

from core.errors import ErrorCodes as CoreErrorCodes


class HealthResponse(BaseModel):
    """Health check response."""

    status: str  # "healthy" or "unhealthy"
    version: str
    request_log_available: bool
    timestamp: str  # ISO 8601 UTC
    error: str | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    code: str
    details: list[str] = []
    reset_at: str | None = None  # only on RATE_LIMITED


class ErrorCodes(CoreErrorCodes):
    """Engine error codes plus the ones only the API layer raises."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class WorkspaceSummary(BaseModel):
    id: str
    name: str


class ValidateKeyResponse(BaseModel):
    valid: bool
    user_id: str
    user_name: str | None = None
    email: str | None = None
    workspaces: list[WorkspaceSummary] = []


class ReferenceModel(BaseModel):
    id: str
    name: str
    project_id: str | None = None


class CheckResponse(BaseModel):
    """Result of checking names against the workspace directory."""

    existing: list[ReferenceModel]
    missing: list[str]
    summary: str


class CreateResponse(BaseModel):
    created: list[ReferenceModel]
    summary: str


class ItemFailureModel(BaseModel):
    id: str
    reason: str


class BulkDeleteResponse(BaseModel):
    deleted: list[str]
    failed: list[ItemFailureModel]
    skipped: list[ItemFailureModel]
    summary: str


class TimeEntryResponse(BaseModel):
    id: str
    start: str
    end: str | None = None
    description: str | None = None
    project_id: str | None = None
    task_id: str | None = None
    tag_ids: list[str] = []
    billable: bool = False


class RowResult(BaseModel):
    row: int
    id: str


class RowFailure(BaseModel):
    row: int
    reason: str


class CommitResponse(BaseModel):
    created: list[RowResult]
    updated: list[RowResult]
    failed: list[RowFailure]
    skipped: list[int]
    summary: str


class RequestLogEntry(BaseModel):
    request_id: str
    timestamp: str
    endpoint: str
    method: str
    workspace_id: str | None = None
    status_code: int
    error_code: str | None = None
    error_message: str | None = None
    processing_time_ms: int
    items_total: int | None = None
    items_failed: int | None = None
    details: list[str] = []


class RequestLogListResponse(BaseModel):
    logs: list[RequestLogEntry]
    count: int
