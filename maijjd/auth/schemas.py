"""
Maijjd - Authentication Request/Response Schemas

Pydantic models for API request parsing and response serialization.
Separates API contracts from database models.

Field names are camelCase on the wire; snake_case is accepted too.
Request fields are optional at this layer so that the service reports
every missing or malformed field in one ValidationError.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from maijjd.auth.models import Account, AccountStatus, Role, VerificationPurpose, utcnow
from maijjd.auth.tokens import TokenPair
from maijjd.config import settings


class CamelModel(BaseModel):
    """Base model serializing to camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Requests
# =============================================================================

class LoginRequest(CamelModel):
    """Request body for POST /auth/login and /admin-auth/login."""
    email: Optional[str] = Field(None, description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    password: Optional[str] = Field(None, description="Account password")


class RegisterRequest(CamelModel):
    """Request body for POST /auth/register."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None


class AdminRegisterRequest(RegisterRequest):
    """Request body for POST /admin-auth/register."""
    admin_key: Optional[str] = Field(None, description="Admin creation key")


class ForgotPasswordRequest(CamelModel):
    email: Optional[str] = None
    phone: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    """
    Request body for the reset endpoints.

    The new password may be sent as newPassword or password.
    """
    token: Optional[str] = None
    new_password: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None

    @property
    def chosen_password(self) -> Optional[str]:
        return self.new_password if self.new_password is not None else self.password


class RefreshRequest(CamelModel):
    """Request body for POST /auth/refresh."""
    refresh_token: Optional[str] = None


class SendVerificationEmailRequest(CamelModel):
    email: Optional[str] = None


class SendVerificationSmsRequest(CamelModel):
    phone: Optional[str] = None


class VerifyCodeRequest(CamelModel):
    """Request body for POST /auth/verify-code."""
    email: Optional[str] = None
    phone: Optional[str] = None
    code: Optional[str] = None
    type: Optional[VerificationPurpose] = Field(None, description="email or phone")

    @field_validator("code", mode="before")
    @classmethod
    def code_as_string(cls, v):
        # Clients often send the six digits as a number
        return str(v) if isinstance(v, int) else v


class AdminPasswordResetRequest(CamelModel):
    """Request body for POST /admin-auth/users/reset-password."""
    target_email: Optional[str] = None
    new_password: Optional[str] = None


class AccountUpdateRequest(CamelModel):
    """Request body for PATCH /admin-auth/users/{account_id}."""
    role: Optional[Role] = None
    status: Optional[AccountStatus] = None


# =============================================================================
# Responses
# =============================================================================

class AccountView(CamelModel):
    """Public view of an account. Never includes hashes or codes."""
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    status: AccountStatus
    email_verified: bool
    phone_verified: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    @field_validator("created_at", "last_login")
    @classmethod
    def attach_utc(cls, v):
        return as_utc(v)

    @classmethod
    def of(cls, account: Account) -> "AccountView":
        return cls.model_validate(account)


class AuthenticationView(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int

    @classmethod
    def of(cls, pair: TokenPair) -> "AuthenticationView":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_in=pair.expires_in,
            refresh_expires_in=pair.refresh_expires_in,
        )


class Envelope(BaseModel):
    """Standard success response."""
    message: str
    data: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    code: str
    timestamp: datetime
    details: Optional[Any] = None
    path: Optional[str] = None
    stack: Optional[List[str]] = None


def dump(model: CamelModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def envelope(message: str, data: Optional[Dict[str, Any]] = None, **metadata: Any) -> Dict[str, Any]:
    """Build a {message, data, metadata} success body."""
    meta = {
        "timestamp": utcnow().isoformat(),
        "apiVersion": settings.API_VERSION,
    }
    meta.update(metadata)
    return Envelope(message=message, data=data, metadata=meta).model_dump(mode="json")
