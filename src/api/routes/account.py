"""API key validation endpoint."""

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_clockify_client, get_credential
from api.logging import track_request
from api.models.responses import ValidateKeyResponse, WorkspaceSummary
from core.clockify_client import ClockifyClient

router = APIRouter(prefix="/v1")


@router.post("/validate-key", response_model=ValidateKeyResponse)
async def validate_key(
    request: Request,
    api_key: str = Depends(get_credential),
    client: ClockifyClient = Depends(get_clockify_client),
):
    """Confirm the key with the upstream service and list its workspaces."""
    with track_request(request, api_key) as request_log:
        user = await client.get_current_user()
        workspaces = await client.list_workspaces()
        request_log.items_total = len(workspaces)
        return ValidateKeyResponse(
            valid=True,
            user_id=user["id"],
            user_name=user.get("name"),
            email=user.get("email"),
            workspaces=[WorkspaceSummary(id=w["id"], name=w.get("name", "")) for w in workspaces],
        )
