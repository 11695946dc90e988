"""
db/schema.py -- Table definitions for users, refresh tokens, and workspaces.

SQLAlchemy Core tables, not ORM classes, so the dataclasses in core/models.py
stay the authoritative domain representation.

Foreign keys:
  refresh_tokens.user_id and workspaces.user_id reference users.id with
  DEFERRABLE INITIALLY DEFERRED. Integrity is checked at COMMIT, not per
  statement. The user replace-with-cascade transaction deletes the old user
  row before re-pointing its dependents; a deferred check lets that sequence
  run while still refusing to commit if any dependent is left dangling.
  There is no ON DELETE CASCADE -- services remove dependents explicitly.

Email uniqueness:
  Enforced only among active users, via a partial unique index. Soft-deleted
  users keep their email and do not block re-registration.

Timestamps are ISO 8601 strings (String(32)); booleans are 0/1 integers.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, String, Table, Text

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    # Never reuse a deleted user's id: a stale JWT for the old row must not
    # authenticate as whoever gets the id next.
    sqlite_autoincrement=True,
)

Index(
    "uq_users_active_email",
    users.c.email,
    unique=True,
    sqlite_where=users.c.is_active == 1,
    postgresql_where=users.c.is_active == 1,
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.id", deferrable=True, initially="DEFERRED"),
        nullable=False,
        index=True,
    ),
    Column("token", String(128), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("created_by_ip", String(45), nullable=False, server_default=""),
    Column("expires_at", String(32), nullable=False),
    Column("revoked_at", String(32)),
    Column("revoked_by_ip", String(45)),
    Column("replaced_by_token", String(128)),
    # Not soft-deletable; see RefreshToken.is_active for revoked/expired.
)

workspaces = Table(
    "workspaces",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.id", deferrable=True, initially="DEFERRED"),
        nullable=False,
        index=True,
    ),
    Column("name", String(255), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)
