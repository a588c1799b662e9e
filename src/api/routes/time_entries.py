"""Time entry endpoints: bulk commit, update, delete and listing."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from api.dependencies import get_clockify_client, get_credential
from api.logging import track_request
from api.models.requests import BulkTimeEntriesRequest, TimeEntryPatch
from api.models.responses import CommitResponse, RowFailure, RowResult, TimeEntryResponse
from core.clockify_client import ClockifyClient
from core.timezones import format_instant
from models.entries import TimeEntry
from services.intake import rows_from_records
from services.resolver import ReferenceResolver
from services.time_entries import TimeEntryService
from services.workflow import BulkIntakeWorkflow

router = APIRouter(prefix="/v1/workspaces/{workspace_id}/time-entries")


def _entry_response(entry: TimeEntry) -> TimeEntryResponse:
    return TimeEntryResponse(
        id=entry.id,
        start=format_instant(entry.start),
        end=format_instant(entry.end) if entry.end else None,
        description=entry.description,
        project_id=entry.project_id,
        task_id=entry.task_id,
        tag_ids=entry.tag_ids,
        billable=entry.billable,
    )


@router.post("/bulk", response_model=CommitResponse)
async def commit_bulk(
    workspace_id: str,
    body: BulkTimeEntriesRequest,
    request: Request,
    response: Response,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """
    Create (or update, for rows with an id) a batch of time entries.

    Rows are committed without the interactive verification stages: project
    names must already exist, tasks and tags are created on demand. Returns
    207 when some rows failed.
    """
    with track_request(request, api_key, workspace_id) as request_log:
        rows = rows_from_records(body.rows)
        resolver = ReferenceResolver(client, workspace_id)
        entries = TimeEntryService(client, workspace_id, body.timezone, resolver, body.user_id)
        workflow = BulkIntakeWorkflow(rows, resolver, entries, body.timezone, skip_resolution=True)
        tally = await workflow.commit(bulk_update_existing=body.bulk_update_existing)

        request_log.items_total = len(rows)
        request_log.items_failed = len(tally.failed)
        for index, reason in tally.failed:
            request_log.details.append(("item_failed", f"row {index}: {reason}"))
        if tally.failed:
            response.status_code = status.HTTP_207_MULTI_STATUS
            request_log.status_code = status.HTTP_207_MULTI_STATUS

        return CommitResponse(
            created=[RowResult(row=i, id=entry_id) for i, entry_id in tally.created],
            updated=[RowResult(row=i, id=entry_id) for i, entry_id in tally.updated],
            failed=[RowFailure(row=i, reason=reason) for i, reason in tally.failed],
            skipped=tally.skipped,
            summary=tally.summary(),
        )


@router.get("", response_model=list[TimeEntryResponse])
async def list_entries(
    workspace_id: str,
    request: Request,
    timezone: str,
    start: str | None = None,
    end: str | None = None,
    project_ids: Annotated[list[str] | None, Query()] = None,
    user_id: str | None = None,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Entries in [start, end), across the given projects when any are named."""
    with track_request(request, api_key, workspace_id) as request_log:
        service = TimeEntryService(client, workspace_id, timezone, user_id=user_id)
        if project_ids:
            entries = await service.list_entries_for_projects(project_ids, start, end)
        else:
            entries = await service.list_entries(start, end)
        request_log.items_total = len(entries)
        return [_entry_response(e) for e in entries]


@router.put("/{entry_id}", response_model=TimeEntryResponse)
async def update_entry(
    workspace_id: str,
    entry_id: str,
    body: TimeEntryPatch,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Partial update: only fields present in the body are changed."""
    with track_request(request, api_key, workspace_id):
        service = TimeEntryService(client, workspace_id, body.timezone)
        entry = await service.update(entry_id, body.to_fields())
        return _entry_response(entry)


@router.delete("/{entry_id}")
async def delete_entry(
    workspace_id: str,
    entry_id: str,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    with track_request(request, api_key, workspace_id):
        await client.delete_time_entry(workspace_id, entry_id)
        return {"deleted": entry_id}
