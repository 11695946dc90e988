"""
api/routes/v1/auth.py -- Authentication and refresh token REST endpoints.

Routes:
  POST /api/v1/auth/authenticate   -- email/password login; sets session cookies
  POST /api/v1/auth/refresh-token  -- rotate a refresh token (body or cookie)
  POST /api/v1/auth/revoke-token   -- revoke a refresh token (body or cookie)
  POST /api/v1/auth/logout         -- revoke the cookie token if any, clear cookies
  GET  /api/v1/auth/me             -- current user (requires auth)

Security:
  [H2] authenticate and refresh-token are rate-limited per IP.
  [C1] UserService.authenticate() runs bcrypt even for unknown emails.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Service errors (NotFoundError, BadRequestError) are translated to HTTP by
  the ServiceError handler in api/main.py -- routes do not catch them.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthenticateRequest,
    AuthenticateResponse,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RevokeTokenRequest,
    RevokeTokenResponse,
    UserDto,
    UserResponse,
)
from auth.dependencies import client_ip, get_current_user
from auth.tokens import REFRESH_COOKIE, REMEMBERED_COOKIE, clear_auth_cookies, set_auth_cookies
from core.config import get_settings
from core.errors import NotFoundError
from core.models import AuthResult, User
from services.users import UserService

logger = logging.getLogger("taledynamic.api.auth")

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/authenticate:   public
# - POST /api/v1/auth/refresh-token:  public -- the refresh token is the credential
# - POST /api/v1/auth/revoke-token:   public -- the refresh token is the credential
# - POST /api/v1/auth/logout:         public
# - GET  /api/v1/auth/me:             requires auth (get_current_user)
router = APIRouter()


def _token_response(model: type[AuthenticateResponse], result: AuthResult, message: str, remembered: bool):
    resp = JSONResponse(
        status_code=200,
        content=model(
            id=result.user.id,
            email=result.user.email,
            jwt_token=result.jwt_token,
            refresh_token=result.refresh_token,
            message=message,
        ).model_dump(),
    )
    set_auth_cookies(resp, result.jwt_token, result.refresh_token, remembered=remembered)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/authenticate", response_model=AuthenticateResponse)
def authenticate(request: Request, body: AuthenticateRequest) -> JSONResponse:
    """Authenticate with email and password; return and set JWT + refresh token."""
    users: UserService = request.app.state.users
    result = users.authenticate(body.email, body.password, client_ip(request))
    return _token_response(
        AuthenticateResponse,
        result,
        "Authenticate process ended with success.",
        remembered=body.remembered or request.cookies.get(REMEMBERED_COOKIE) == "1",
    )


@limiter.limit(_settings.refresh_rate_limit)  # [H2]
@router.post("/auth/refresh-token", response_model=RefreshTokenResponse)
def refresh_token(request: Request, body: Optional[RefreshTokenRequest] = None) -> JSONResponse:
    """Rotate a refresh token. The presented token can never be used again."""
    users: UserService = request.app.state.users
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    result = users.refresh_token(token, client_ip(request))
    return _token_response(
        RefreshTokenResponse,
        result,
        "Token refreshed.",
        remembered=request.cookies.get(REMEMBERED_COOKIE) == "1",
    )


@router.post("/auth/revoke-token", response_model=RevokeTokenResponse)
def revoke_token(request: Request, body: Optional[RevokeTokenRequest] = None) -> RevokeTokenResponse:
    users: UserService = request.app.state.users
    token = (body.token if body else None) or request.cookies.get(REFRESH_COOKIE)
    users.revoke_token(token, client_ip(request))
    return RevokeTokenResponse(is_success=True, message="Token revoked.")


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the cookie refresh token (if still active) and clear all session cookies."""
    users: UserService = request.app.state.users
    token = request.cookies.get(REFRESH_COOKIE)
    if token:
        try:
            users.revoke_token(token, client_ip(request))
        except NotFoundError:
            logger.debug("Logout with an inactive refresh token")
    resp = JSONResponse(content={"status_code": 200, "message": "Logged out."})
    clear_auth_cookies(resp)
    return resp


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse(user=UserDto.from_user(current_user), message="User was got successfully.")
