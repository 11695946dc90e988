"""
core/models.py -- Domain dataclasses for users, refresh tokens, and workspaces.

Pattern: Data class. Dataclasses own the domain shape; the db/ repositories
map rows to and from them and the services do the work. The only behaviour
here is derived state (RefreshToken.is_expired / is_active).

Timestamps are ISO 8601 UTC strings, the same representation the database
columns use, so round-tripping never loses precision or timezone.

Soft delete: every entity carries is_active. False means logically deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

# Loose shape check for email addresses. Deliverability is not our problem;
# this only rejects values that obviously are not addresses.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RefreshToken:
    """An opaque, single-use credential exchanged for a new JWT.

    Rotation chain: when a token is used, it is revoked and replaced_by_token
    is set to the value of its successor, so every token points forward to
    the one that replaced it. replaced_by_token is a back-reference by value,
    not ownership -- both tokens belong to the same user.
    """

    token: str
    expires_at: str
    created_by_ip: str = ""
    user_id: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[str] = None
    revoked_at: Optional[str] = None
    revoked_by_ip: Optional[str] = None
    replaced_by_token: Optional[str] = None

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= datetime.fromisoformat(self.expires_at)

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None and not self.is_expired


@dataclass
class User:
    """An account. Email is unique among active users only.

    hashed_password is a bcrypt hash -- plaintext passwords are never stored.
    refresh_tokens is ordered by creation (oldest first) and is populated only
    by reads that ask for it; a bare lookup leaves it empty.
    """

    email: str
    hashed_password: str
    id: Optional[int] = None
    is_active: bool = True
    created_at: Optional[str] = None
    refresh_tokens: list[RefreshToken] = field(default_factory=list)


@dataclass
class Workspace:
    user_id: int
    name: str
    id: Optional[int] = None
    is_active: bool = True
    created_at: Optional[str] = None


@dataclass
class AuthResult:
    """Outcome of a successful authenticate or refresh call."""

    user: User
    jwt_token: str
    refresh_token: str
