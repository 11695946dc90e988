"""
db/repository.py -- Generic table repository and the row mappers.

Pattern: Repository + Data Mapper. Repository[T] is one clean interface per
entity table; the _row_to_* / _*_values functions are the mappers that
translate between raw rows and the dataclasses in core/models.py.

Every method takes an explicit Connection. Repositories never open or commit
transactions themselves -- the caller (a service, through DataContext) owns
the unit of work, so several repository calls can share one transaction.

Active-only policy:
  Soft-deleted rows (is_active = 0) are hidden by passing active_only=True.
  refresh_tokens has no is_active column and rejects active_only.
  The filter is applied in exactly one place, Repository.scope(). Callers
  never write `is_active == 1` themselves.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import ColumnElement, Select, Table, func, select
from sqlalchemy.engine import Connection, Row

from core.models import RefreshToken, User, Workspace, utcnow_iso
from db import schema

T = TypeVar("T")


class Repository(Generic[T]):
    """CRUD access to one table, returning domain dataclasses."""

    def __init__(
        self,
        table: Table,
        to_entity: Callable[[Row], T],
        to_values: Callable[[T], dict[str, Any]],
    ) -> None:
        self.table = table
        self._to_entity = to_entity
        self._to_values = to_values

    # ------------------------------------------------------------------
    # Query construction
    # ------------------------------------------------------------------

    def scope(self, stmt: Select, active_only: bool) -> Select:
        """Apply the soft-delete policy to a SELECT against this table."""
        if active_only:
            if "is_active" not in self.table.c:
                raise ValueError(f"{self.table.name} rows cannot be soft-deleted")
            return stmt.where(self.table.c.is_active == 1)
        return stmt

    def _select(self, criteria: tuple[ColumnElement, ...], active_only: bool) -> Select:
        stmt = select(self.table)
        if criteria:
            stmt = stmt.where(*criteria)
        return self.scope(stmt, active_only)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, conn: Connection, entity_id: int, active_only: bool = False) -> Optional[T]:
        return self.find_one(conn, self.table.c.id == entity_id, active_only=active_only)

    def find_one(self, conn: Connection, *criteria: ColumnElement, active_only: bool = False) -> Optional[T]:
        row = conn.execute(self._select(criteria, active_only).order_by(self.table.c.id)).first()
        return self._to_entity(row) if row is not None else None

    def find_all(self, conn: Connection, *criteria: ColumnElement, active_only: bool = False) -> list[T]:
        """Return matching rows in insertion (id) order."""
        rows = conn.execute(self._select(criteria, active_only).order_by(self.table.c.id)).fetchall()
        return [self._to_entity(r) for r in rows]

    def count(self, conn: Connection, *criteria: ColumnElement, active_only: bool = False) -> int:
        stmt = select(func.count()).select_from(self.table)
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = self.scope(stmt, active_only)
        return conn.execute(stmt).scalar() or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, conn: Connection, entity: T) -> int:
        """Insert the entity and return its assigned primary key.

        Any id already set on the entity is ignored; the database assigns one.
        """
        values = self._to_values(entity)
        values.pop("id", None)
        result = conn.execute(self.table.insert().values(**values))
        return result.inserted_primary_key[0]

    def update(self, conn: Connection, entity_id: int, **values: Any) -> bool:
        """Update columns on one row. Returns True if the row exists."""
        return self.update_where(conn, self.table.c.id == entity_id, **values) > 0

    def update_where(self, conn: Connection, *criteria: ColumnElement, **values: Any) -> int:
        """Update every row matching criteria. Returns the number of rows touched."""
        if "is_active" in values:
            values["is_active"] = 1 if values["is_active"] else 0
        result = conn.execute(self.table.update().where(*criteria).values(**values))
        return result.rowcount

    def delete(self, conn: Connection, entity_id: int) -> bool:
        """Physically remove one row. Returns False if it did not exist."""
        return self.delete_where(conn, self.table.c.id == entity_id) > 0

    def delete_where(self, conn: Connection, *criteria: ColumnElement) -> int:
        result = conn.execute(self.table.delete().where(*criteria))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    # refresh_tokens is left empty; UserService loads them when it needs them.
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _user_values(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "hashed_password": user.hashed_password,
        "is_active": 1 if user.is_active else 0,
        "created_at": user.created_at or utcnow_iso(),
    }


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        created_at=row.created_at,
        created_by_ip=row.created_by_ip,
        expires_at=row.expires_at,
        revoked_at=row.revoked_at,
        revoked_by_ip=row.revoked_by_ip,
        replaced_by_token=row.replaced_by_token,
    )


def _refresh_token_values(token: RefreshToken) -> dict[str, Any]:
    return {
        "id": token.id,
        "user_id": token.user_id,
        "token": token.token,
        "created_at": token.created_at or utcnow_iso(),
        "created_by_ip": token.created_by_ip or "",
        "expires_at": token.expires_at,
        "revoked_at": token.revoked_at,
        "revoked_by_ip": token.revoked_by_ip,
        "replaced_by_token": token.replaced_by_token,
    }


def _row_to_workspace(row) -> Workspace:
    return Workspace(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _workspace_values(workspace: Workspace) -> dict[str, Any]:
    return {
        "id": workspace.id,
        "user_id": workspace.user_id,
        "name": workspace.name,
        "is_active": 1 if workspace.is_active else 0,
        "created_at": workspace.created_at or utcnow_iso(),
    }


def user_repository() -> Repository[User]:
    return Repository(schema.users, _row_to_user, _user_values)


def refresh_token_repository() -> Repository[RefreshToken]:
    return Repository(schema.refresh_tokens, _row_to_refresh_token, _refresh_token_values)


def workspace_repository() -> Repository[Workspace]:
    return Repository(schema.workspaces, _row_to_workspace, _workspace_values)
