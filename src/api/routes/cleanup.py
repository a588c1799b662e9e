"""Bulk tag and task deletion endpoints."""

from fastapi import APIRouter, Depends, Request, Response, status

from api.dependencies import get_clockify_client, get_credential
from api.logging import RequestLog, track_request
from api.models.requests import DeleteTagsRequest, DeleteTasksRequest
from api.models.responses import BulkDeleteResponse, ItemFailureModel
from core.batching import BatchResult
from core.clockify_client import ClockifyClient
from services.cleanup import delete_tags, delete_tasks

router = APIRouter(prefix="/v1/workspaces/{workspace_id}")


def _batch_response(result: BatchResult[str], response: Response, request_log: RequestLog) -> BulkDeleteResponse:
    """207 when some deletes failed; the body always lists every ID."""
    request_log.items_total = result.total
    request_log.items_failed = len(result.failed)
    for failure in result.failed:
        request_log.details.append(("item_failed", f"{failure.item}: {failure.reason}"))
    for skip in result.skipped:
        request_log.details.append(("item_skipped", f"{skip.item}: {skip.reason}"))

    if result.failed:
        response.status_code = status.HTTP_207_MULTI_STATUS
        request_log.status_code = status.HTTP_207_MULTI_STATUS

    return BulkDeleteResponse(
        deleted=list(result.succeeded),
        failed=[ItemFailureModel(id=f.item, reason=f.reason) for f in result.failed],
        skipped=[ItemFailureModel(id=s.item, reason=s.reason) for s in result.skipped],
        summary=result.summary(),
    )


@router.delete("/tags/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_tags(
    workspace_id: str,
    body: DeleteTagsRequest,
    request: Request,
    response: Response,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Delete tags in batches; tags from another workspace are skipped."""
    with track_request(request, api_key, workspace_id) as request_log:
        result = await delete_tags(client, workspace_id, body.tag_ids)
        return _batch_response(result, response, request_log)


@router.delete("/tasks/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_tasks(
    workspace_id: str,
    body: DeleteTasksRequest,
    request: Request,
    response: Response,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Delete tasks of one project in batches; tasks of other projects are skipped."""
    with track_request(request, api_key, workspace_id) as request_log:
        result = await delete_tasks(client, workspace_id, body.project_id, body.task_ids)
        return _batch_response(result, response, request_log)
