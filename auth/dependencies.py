"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two ways to present a JWT are checked in priority order:
  1. JWT cookie ("access_token") -- set by the web UI and /auth/authenticate.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on an active User loaded through app.state.users.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/, web/, or services/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from auth.tokens import ACCESS_COOKIE, decode_access_token
from core.errors import NotFoundError
from core.models import User


def client_ip(request: Request) -> str:
    """Best-effort caller address, recorded on issued and revoked tokens."""
    return request.client.host if request.client else ""


def bearer_or_cookie_token(request: Request) -> Optional[str]:
    token: Optional[str] = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_current_user(request: Request) -> Optional[User]:
    """Authenticate the request via cookie or Bearer header.

    Returns the active User on success, None on any failure. A JWT whose user
    has since been replaced, deleted, or deactivated yields None.
    """
    token = bearer_or_cookie_token(request)
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    try:
        return request.app.state.users.get_user_by_id(payload["user_id"])
    except NotFoundError:
        return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
