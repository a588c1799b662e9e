"""Pydantic request models for API endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NamesRequest(BaseModel):
    names: list[str] = Field(..., min_length=1)


class TaskNamesRequest(NamesRequest):
    """Task names are checked under one project; without it all are missing."""

    project_id: str | None = None


class CreateTasksRequest(NamesRequest):
    project_id: str


class DeleteTagsRequest(BaseModel):
    tag_ids: list[str] = Field(..., min_length=1)


class DeleteTasksRequest(BaseModel):
    project_id: str
    task_ids: list[str] = Field(..., min_length=1)


class TimeEntryPatch(BaseModel):
    """
    Partial time entry update.

    Only fields present in the request body are sent upstream. start/end are
    wall times in `timezone` unless they carry 'Z' or an offset.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    timezone: str
    description: str | None = None
    start: str | None = None
    end: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    task_id: str | None = None
    task_name: str | None = None
    tags: list[str] | None = None
    tag_ids: list[str] | None = None
    billable: bool | None = None

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"timezone"})


class BulkTimeEntriesRequest(BaseModel):
    """Rows already carrying IDs (or names) in the bulk-intake column layout."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timezone: str
    rows: list[dict[str, Any]] = Field(..., min_length=1)
    user_id: str | None = None
    bulk_update_existing: bool = False
