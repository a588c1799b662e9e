"""API Pydantic models."""

from .requests import (
    BulkTimeEntriesRequest,
    CreateTasksRequest,
    DeleteTagsRequest,
    DeleteTasksRequest,
    NamesRequest,
    TaskNamesRequest,
    TimeEntryPatch,
)
from .responses import (
    BulkDeleteResponse,
    CheckResponse,
    CommitResponse,
    CreateResponse,
    ErrorCodes,
    ErrorResponse,
    HealthResponse,
    RequestLogListResponse,
    TimeEntryResponse,
    ValidateKeyResponse,
)

__all__ = [
    "BulkDeleteResponse",
    "BulkTimeEntriesRequest",
    "CheckResponse",
    "CommitResponse",
    "CreateResponse",
    "CreateTasksRequest",
    "DeleteTagsRequest",
    "DeleteTasksRequest",
    "ErrorCodes",
    "ErrorResponse",
    "HealthResponse",
    "NamesRequest",
    "RequestLogListResponse",
    "TaskNamesRequest",
    "TimeEntryPatch",
    "TimeEntryResponse",
    "ValidateKeyResponse",
]
