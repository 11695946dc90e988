"""
api/routes/v1/workspaces.py -- Workspace endpoints. All require auth.

Routes:
  POST   /api/v1/workspaces        -- create a workspace for the caller
  GET    /api/v1/workspaces        -- list the caller's workspaces
  GET    /api/v1/workspaces/{id}   -- one workspace the caller owns
  DELETE /api/v1/workspaces/{id}   -- soft-delete a workspace the caller owns

IDOR guard: every lookup passes current_user.id to the service, which scopes
the query by owner. Another user's workspace is reported as 404, never 403.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ServiceResponse, WorkspaceCreate, WorkspaceDto, WorkspaceResponse, WorkspacesResponse
from auth.dependencies import get_current_user
from core.models import User
from services.workspaces import WorkspaceService

router = APIRouter()


@router.post("/workspaces", response_model=WorkspaceResponse, status_code=201)
def create_workspace(
    request: Request,
    body: WorkspaceCreate,
    current_user: User = Depends(get_current_user),
) -> WorkspaceResponse:
    workspaces: WorkspaceService = request.app.state.workspaces
    created = workspaces.create_workspace(current_user.id, body.name)
    return WorkspaceResponse(
        status_code=201,
        workspace=WorkspaceDto.from_workspace(created),
        message="Workspace was created successfully.",
    )


@router.get("/workspaces", response_model=WorkspacesResponse)
def list_workspaces(request: Request, current_user: User = Depends(get_current_user)) -> WorkspacesResponse:
    workspaces: WorkspaceService = request.app.state.workspaces
    return WorkspacesResponse(
        workspaces=[WorkspaceDto.from_workspace(w) for w in workspaces.get_user_workspaces(current_user.id)],
        message="Workspaces were got successfully.",
    )


@router.get("/workspaces/{workspace_id}", response_model=WorkspaceResponse)
def get_workspace(
    request: Request,
    workspace_id: int,
    current_user: User = Depends(get_current_user),
) -> WorkspaceResponse:
    workspaces: WorkspaceService = request.app.state.workspaces
    workspace = workspaces.get_workspace_by_id(workspace_id, user_id=current_user.id)
    return WorkspaceResponse(workspace=WorkspaceDto.from_workspace(workspace), message="Workspace was got successfully.")


@router.delete("/workspaces/{workspace_id}", response_model=ServiceResponse)
def delete_workspace(
    request: Request,
    workspace_id: int,
    current_user: User = Depends(get_current_user),
) -> ServiceResponse:
    workspaces: WorkspaceService = request.app.state.workspaces
    workspaces.delete_workspace(workspace_id, current_user.id)
    return ServiceResponse(message="Workspace was deleted successfully.")
