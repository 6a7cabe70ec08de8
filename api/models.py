"""
API request and response models for SessionGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (roleName, newPassword, emailVerified) for
compatibility with existing clients; Python attributes stay snake_case via
the alias generator. FastAPI serializes response models by alias.

Validation failures are turned into 400 validation_error responses by
api/main.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from auth.models import CurrentUser, Role, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Pragmatic address check: one "@", no whitespace, a dot in the domain.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt only looks at the first 72 bytes; 128 characters keeps inputs bounded.
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class _FrozenWireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(_WireModel):
    """Request body for POST /login. Either username or email identifies the account."""

    username: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not self.username and not self.email:
            raise ValueError("Username or a valid email is required")
        return self


class SignupRequest(_WireModel):
    username: str = Field(min_length=1, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class EmailRequest(_WireModel):
    """Request body for POST /resend-verification and POST /forgot-password."""

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)


class ResetPasswordRequest(_WireModel):
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class ChangePasswordRequest(_WireModel):
    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class UserUpdate(_WireModel):
    """Request body for PUT /user. Omitted fields are left unchanged."""

    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone_number: Optional[str] = Field(default=None, min_length=1, max_length=50)


class RoleCreate(_WireModel):
    role_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)


class RoleAssign(_WireModel):
    user_id: int = Field(gt=0)
    role_id: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(_FrozenWireModel):
    token: str


class MessageResponse(_FrozenWireModel):
    message: str


class SessionUser(_FrozenWireModel):
    id: int
    username: str
    verified: bool
    roles: list[str]

    @classmethod
    def from_current(cls, user: CurrentUser) -> "SessionUser":
        return cls(id=user.id, username=user.username, verified=user.verified, roles=list(user.roles))


class SessionCheckResponse(_FrozenWireModel):
    """Response for GET /verify."""

    message: str
    user: SessionUser


class UserResponse(_FrozenWireModel):
    """Profile view of a User. The password hash is never part of it."""

    id: int
    username: str
    email: str
    name: Optional[str] = None
    phone_number: Optional[str] = None
    email_verified: bool
    accepted_terms: bool
    created_at: str
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            name=user.name,
            phone_number=user.phone_number,
            email_verified=user.email_verified,
            accepted_terms=user.accepted_terms,
            created_at=user.created_at or "",
            updated_at=user.updated_at,
        )


class RoleResponse(_FrozenWireModel):
    id: int
    role_name: str
    description: Optional[str] = None

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(id=role.id, role_name=role.name, description=role.description)


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
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
