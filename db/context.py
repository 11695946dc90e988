"""
db/context.py -- DataContext: engine ownership and the unit of work.

DataContext is the persistence context every service receives. It owns the
SQLAlchemy engine, creates the schema, and exposes one typed repository per
entity. Work is grouped with transaction():

    ctx = DataContext("sqlite:///taledynamic.db")
    with ctx.transaction() as conn:
        user_id = ctx.users.insert(conn, user)
        ctx.workspaces.insert(conn, Workspace(user_id=user_id, name="Drafts"))
    # committed here; any exception inside the block rolls both back
    ctx.close()

SQLite specifics:
  Each new DBAPI connection gets WAL journal mode (readers do not block
  during writes) and foreign key enforcement. PRAGMAs are per-connection, so
  they are set in a "connect" event rather than once at startup.
  check_same_thread=False because FastAPI runs sync handlers in a thread pool.

Switching to PostgreSQL is a URL change; the pragmas are skipped for any
non-SQLite URL and the deferred foreign keys work natively.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from db.repository import refresh_token_repository, user_repository, workspace_repository
from db.schema import metadata

logger = logging.getLogger("taledynamic.db")


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DataContext:
    """Persistence context: engine, schema, repositories, transactions."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

        self.users = user_repository()
        self.refresh_tokens = refresh_token_repository()
        self.workspaces = workspace_repository()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside one transaction.

        Commits when the block exits normally, rolls back when it raises.
        Deferred foreign keys are checked at the commit, so a transaction that
        leaves a dangling reference fails here with IntegrityError.
        """
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield a connection for read-only work. Nothing is committed."""
        with self.engine.connect() as conn:
            yield conn

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
