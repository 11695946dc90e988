"""
API request and response models for Taledynamic REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only bound sizes and types. Emptiness and cross-field rules
(password confirmation, default ids) are checked by the services, which report
every problem in one 400 response.

Every success body extends ServiceResponse, so clients always find a
status_code and a human-readable message next to the payload.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models import User, Workspace

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AuthenticateRequest(BaseModel):
    """Request body for POST /api/v1/auth/authenticate."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=72)
    remembered: bool = False


class RefreshTokenRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh-token.

    refresh_token may be omitted when the refresh_token cookie is present.
    """

    refresh_token: Optional[str] = Field(default=None, max_length=128)


class RevokeTokenRequest(BaseModel):
    token: Optional[str] = Field(default=None, max_length=128)


class CreateUserRequest(BaseModel):
    """Request body for POST /api/v1/users (registration)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=72)
    confirm_password: Optional[str] = Field(default=None, max_length=72)


class UpdateUserRequest(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. Omitted fields keep their value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=72)
    confirm_password: Optional[str] = Field(default=None, max_length=72)
    current_password: Optional[str] = Field(default=None, max_length=72)


class WorkspaceCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Shared DTOs
# ---------------------------------------------------------------------------


class UserDto(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserDto":
        return cls(id=user.id, email=user.email)


class WorkspaceDto(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    name: str
    created_at: str

    @classmethod
    def from_workspace(cls, workspace: Workspace) -> "WorkspaceDto":
        return cls(
            id=workspace.id,
            user_id=workspace.user_id,
            name=workspace.name,
            created_at=workspace.created_at or "",
        )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ServiceResponse(BaseModel):
    """Envelope fields carried by every success response."""

    model_config = ConfigDict(frozen=True)

    status_code: int = 200
    message: str = ""


class AuthenticateResponse(ServiceResponse):
    id: int
    email: str
    jwt_token: str
    refresh_token: str


class RefreshTokenResponse(AuthenticateResponse):
    pass


class RevokeTokenResponse(ServiceResponse):
    is_success: bool


class UserResponse(ServiceResponse):
    user: UserDto


class UpdateUserResponse(UserResponse):
    """The user row is replaced on update, so the caller gets a JWT for the new id."""

    jwt_token: str


class UsersResponse(ServiceResponse):
    users: list[UserDto]


class IsEmailUsedResponse(ServiceResponse):
    is_email_used: bool


class WorkspaceResponse(ServiceResponse):
    workspace: WorkspaceDto


class WorkspacesResponse(ServiceResponse):
    workspaces: list[WorkspaceDto]


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
