"""
services/base.py -- Generic CRUD service over one repository.

BaseService[T] is deliberately thin: create / get_by_id / get_all / delete,
each in its own transaction. It applies no business rules and no active-only
filtering; domain services subclass it and layer those on.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from sqlalchemy.engine import Connection

from core.errors import InternalServerError
from db.context import DataContext
from db.repository import Repository

T = TypeVar("T")


class BaseService(Generic[T]):
    def __init__(self, context: DataContext, repository: Repository[T]) -> None:
        self.context = context
        self.repository = repository

    def create(self, entity: T) -> T:
        """Insert the entity and return it as persisted, with its assigned id.

        No duplicate check -- uniqueness rules belong to the subclass.
        """
        with self.context.transaction() as conn:
            entity_id = self.repository.insert(conn, entity)
            created = self.repository.get(conn, entity_id)
        if created is None:
            raise InternalServerError("Entity not found after write.")
        return created

    def get_by_id(self, entity_id: int) -> Optional[T]:
        """Return the entity with this id, active or not, or None."""
        with self.context.connect() as conn:
            return self.repository.get(conn, entity_id)

    def get_all(self) -> list[T]:
        """Return every row. No filtering, no paging."""
        with self.context.connect() as conn:
            return self.repository.find_all(conn)

    def delete(self, entity_id: int) -> bool:
        """Physically remove the entity. Returns False if it did not exist."""
        with self.context.transaction() as conn:
            if self.repository.get(conn, entity_id) is None:
                return False
            self._delete_dependents(conn, entity_id)
            return self.repository.delete(conn, entity_id)

    def _delete_dependents(self, conn: Connection, entity_id: int) -> None:
        """Hook: remove rows that reference entity_id, inside the same transaction."""
