"""Project, task and tag check/create endpoints."""

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_clockify_client, get_credential
from api.logging import track_request
from api.models.requests import CreateTasksRequest, NamesRequest, TaskNamesRequest
from api.models.responses import CheckResponse, CreateResponse, ReferenceModel
from core.clockify_client import ClockifyClient
from models.entries import Reference, ReferenceKind, ResolveResult
from services.resolver import ReferenceResolver

router = APIRouter(prefix="/v1/workspaces/{workspace_id}")


def _reference_model(ref: Reference) -> ReferenceModel:
    return ReferenceModel(id=ref.id, name=ref.name, project_id=ref.parent_id)


def _check_response(result: ResolveResult) -> CheckResponse:
    return CheckResponse(
        existing=[_reference_model(r) for r in result.existing],
        missing=list(result.missing),
        summary=result.summary(),
    )


def _create_response(created: list[Reference]) -> CreateResponse:
    return CreateResponse(
        created=[_reference_model(r) for r in created],
        summary=f"created: {len(created)}",
    )


@router.post("/projects/check", response_model=CheckResponse)
async def check_projects(
    workspace_id: str,
    body: NamesRequest,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    with track_request(request, api_key, workspace_id) as request_log:
        result = await ReferenceResolver(client, workspace_id).resolve(ReferenceKind.PROJECT, body.names)
        request_log.items_total = len(body.names)
        request_log.items_failed = len(result.missing)
        return _check_response(result)


@router.post("/tasks/check", response_model=CheckResponse)
async def check_tasks(
    workspace_id: str,
    body: TaskNamesRequest,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Without project_id every name comes back missing."""
    with track_request(request, api_key, workspace_id) as request_log:
        result = await ReferenceResolver(client, workspace_id).resolve(
            ReferenceKind.TASK, body.names, scope=body.project_id
        )
        request_log.items_total = len(body.names)
        request_log.items_failed = len(result.missing)
        return _check_response(result)


@router.post("/tags/check", response_model=CheckResponse)
async def check_tags(
    workspace_id: str,
    body: NamesRequest,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    with track_request(request, api_key, workspace_id) as request_log:
        result = await ReferenceResolver(client, workspace_id).resolve(ReferenceKind.TAG, body.names)
        request_log.items_total = len(body.names)
        request_log.items_failed = len(result.missing)
        return _check_response(result)


@router.post("/tasks/create", response_model=CreateResponse)
async def create_tasks(
    workspace_id: str,
    body: CreateTasksRequest,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Create the named tasks that do not exist yet under the project."""
    with track_request(request, api_key, workspace_id) as request_log:
        created = await ReferenceResolver(client, workspace_id).create_missing(
            ReferenceKind.TASK, body.names, scope=body.project_id
        )
        request_log.items_total = len(created)
        return _create_response(created)


@router.post("/tags/create", response_model=CreateResponse)
async def create_tags(
    workspace_id: str,
    body: NamesRequest,
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    with track_request(request, api_key, workspace_id) as request_log:
        created = await ReferenceResolver(client, workspace_id).create_missing(ReferenceKind.TAG, body.names)
        request_log.items_total = len(created)
        return _create_response(created)
