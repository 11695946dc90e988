"""
api/routes/v1/users.py -- User registration and account management.

Routes:
  POST   /api/v1/users              -- register (public)
  GET    /api/v1/users              -- list active users (requires auth)
  GET    /api/v1/users/email-used   -- is an email taken? (public)
  GET    /api/v1/users/{id}         -- one active user (requires auth)
  PATCH  /api/v1/users/{id}         -- change email/password (self only)
  DELETE /api/v1/users/{id}         -- delete account (self only)

Route registration order matters: /users/email-used must be registered
before /users/{user_id} or FastAPI tries to parse "email-used" as an int.

Account changes replace the user row, so PATCH returns a JWT for the new id
and rewrites the access cookie. The old JWT stops working immediately.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    CreateUserRequest,
    IsEmailUsedResponse,
    ServiceResponse,
    UpdateUserRequest,
    UpdateUserResponse,
    UserDto,
    UserResponse,
    UsersResponse,
)
from auth.dependencies import client_ip, get_current_user
from auth.tokens import clear_auth_cookies, create_access_token, set_access_cookie
from core.models import User
from services.users import UserService

router = APIRouter()


def _require_self(user_id: int, current_user: User) -> None:
    """Accounts may only be changed by their owner."""
    if user_id != current_user.id:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You can only change your own account."},
        )


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: CreateUserRequest) -> UserResponse:
    users: UserService = request.app.state.users
    created = users.create_user(body.email, body.password, body.confirm_password, client_ip(request))
    return UserResponse(status_code=201, user=UserDto.from_user(created), message="User was created successfully.")


@router.get("/users", response_model=UsersResponse)
def list_users(request: Request, current_user: User = Depends(get_current_user)) -> UsersResponse:
    users: UserService = request.app.state.users
    return UsersResponse(
        users=[UserDto.from_user(u) for u in users.get_users()],
        message="Users were got successfully.",
    )


@router.get("/users/email-used", response_model=IsEmailUsedResponse)
def is_email_used(request: Request, email: str = "") -> IsEmailUsedResponse:
    """Registration forms call this to warn about taken emails before submit."""
    users: UserService = request.app.state.users
    return IsEmailUsedResponse(is_email_used=users.is_email_used(email), message="Email was checked.")


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, current_user: User = Depends(get_current_user)) -> UserResponse:
    users: UserService = request.app.state.users
    user = users.get_user_by_id(user_id)
    return UserResponse(user=UserDto.from_user(user), message="User was got successfully.")


@router.patch("/users/{user_id}", response_model=UpdateUserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    _require_self(user_id, current_user)
    users: UserService = request.app.state.users
    updated = users.update_user(
        user_id,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        current_password=body.current_password,
    )
    jwt_token = create_access_token(updated.id, updated.email)
    resp = JSONResponse(
        content=UpdateUserResponse(
            user=UserDto.from_user(updated),
            jwt_token=jwt_token,
            message="User was updated successfully.",
        ).model_dump()
    )
    set_access_cookie(resp, jwt_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/users/{user_id}", response_model=ServiceResponse)
def delete_user(request: Request, user_id: int, current_user: User = Depends(get_current_user)) -> JSONResponse:
    _require_self(user_id, current_user)
    users: UserService = request.app.state.users
    if not users.delete_user(user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User is not found."},
        )
    resp = JSONResponse(content=ServiceResponse(message="User was deleted successfully.").model_dump())
    clear_auth_cookies(resp)
    return resp
