"""
services/workspaces.py -- Workspaces owned by a single user.

Ownership is checked in the query: a lookup scoped to a user_id returns
NotFoundError for another user's workspace rather than 403, so callers
cannot probe which ids exist (IDOR guard).
"""

from __future__ import annotations

import logging
from typing import Optional

from core.errors import NotFoundError
from core.models import Workspace
from core.validation import Validator
from db import schema
from db.context import DataContext
from services.base import BaseService

logger = logging.getLogger("taledynamic.workspaces")

_workspaces = schema.workspaces


class WorkspaceService(BaseService[Workspace]):
    def __init__(self, context: DataContext) -> None:
        super().__init__(context, context.workspaces)

    def create_workspace(self, user_id: int, name: str) -> Workspace:
        v = Validator()
        v.require(user_id, "UserId is default.")
        v.require(name, "Name is not set.")
        v.raise_if_invalid()

        with self.context.connect() as conn:
            owner = self.context.users.get(conn, user_id, active_only=True)
        if owner is None:
            raise NotFoundError("User is not found.")
        workspace = self.create(Workspace(user_id=user_id, name=name.strip()))
        logger.info("Workspace %d created for user %d", workspace.id, user_id)
        return workspace

    def get_workspace_by_id(self, workspace_id: int, user_id: Optional[int] = None) -> Workspace:
        """Return an active workspace, optionally requiring a specific owner."""
        v = Validator()
        v.require(workspace_id, "Id is default.")
        v.raise_if_invalid()

        criteria = [_workspaces.c.id == workspace_id]
        if user_id is not None:
            criteria.append(_workspaces.c.user_id == user_id)
        with self.context.connect() as conn:
            workspace = self.repository.find_one(conn, *criteria, active_only=True)
        if workspace is None:
            raise NotFoundError("Workspace is not found.")
        return workspace

    def get_user_workspaces(self, user_id: int) -> list[Workspace]:
        v = Validator()
        v.require(user_id, "UserId is default.")
        v.raise_if_invalid()

        with self.context.connect() as conn:
            return self.repository.find_all(conn, _workspaces.c.user_id == user_id, active_only=True)

    def delete_workspace(self, workspace_id: int, user_id: int) -> None:
        """Soft-delete a workspace the user owns."""
        v = Validator()
        v.require(workspace_id, "Id is default.")
        v.require(user_id, "UserId is default.")
        v.raise_if_invalid()

        with self.context.transaction() as conn:
            touched = self.repository.update_where(
                conn,
                _workspaces.c.id == workspace_id,
                _workspaces.c.user_id == user_id,
                _workspaces.c.is_active == 1,
                is_active=False,
            )
        if not touched:
            raise NotFoundError("Workspace is not found.")
        logger.info("Workspace %d deleted by user %d", workspace_id, user_id)
