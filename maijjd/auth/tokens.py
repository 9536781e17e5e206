"""
Maijjd - JWT Token Management

Creates and validates the two session token kinds:
- Access tokens: sub, email, phone, role, permissions (short-lived)
- Refresh tokens: sub and type="refresh" (long-lived)

Both carry iss, aud, iat, exp and a unique jti, and are signed with
settings.SECRET_KEY.

Security:
- Signature, issuer, audience and expiry are checked on every decode
- A refresh token presented as an access token is rejected, and vice versa
- Tokens are stateless; logout is client-side discard
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import secrets

from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel, Field

from maijjd.auth.models import Account
from maijjd.auth.scopes import Scope
from maijjd.config import settings
from maijjd.gateway.rbac import permissions_for


ACCESS = "access"
REFRESH = "refresh"


class InvalidTokenError(Exception):
    """Raised when JWT validation fails."""
    pass


class ExpiredTokenError(InvalidTokenError):
    """Raised when the token signature is valid but exp has passed."""
    pass


class InvalidTokenTypeError(InvalidTokenError):
    """Raised when a token of the wrong kind is presented."""
    pass


class TokenPayload(BaseModel):
    """
    Decoded JWT claims.

    Access tokens carry identity and permission claims; refresh tokens
    carry only sub and type.
    """
    sub: str = Field(..., description="Account ID")
    iss: str = Field(..., description="Issuer")
    aud: str = Field(..., description="Audience")
    iat: datetime = Field(..., description="Issued at time")
    exp: datetime = Field(..., description="Expiration time")
    jti: str = Field(..., description="Token ID for audit")
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    type: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.type or ACCESS


@dataclass
class TokenPair:
    """Access + refresh tokens minted together."""
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    token_type: str = "Bearer"


def _signing_key() -> str:
    if not settings.SECRET_KEY:
        raise RuntimeError("SECRET_KEY is not configured")
    return settings.SECRET_KEY


def _encode(claims: dict, lifetime: timedelta) -> tuple[str, str]:
    now = datetime.now(timezone.utc)
    token_id = secrets.token_hex(16)
    payload = {
        **claims,
        "jti": token_id,
        "iat": now,
        "exp": now + lifetime,
        "iss": settings.JWT_ISSUER,
    }
    encoded = jwt.encode(payload, _signing_key(), algorithm=settings.JWT_ALGORITHM)
    return encoded, token_id


def create_access_token(
    account: Account,
    scope: Scope,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str]:
    """
    Create a new JWT access token.

    Args:
        account: Authenticated account
        scope: Scope supplying audience and default lifetime
        expires_delta: Optional custom expiration time

    Returns:
        Tuple of (encoded JWT string, token ID)
    """
    role = account.role.value
    claims = {
        "sub": str(account.id),
        "email": account.email,
        "phone": account.phone,
        "role": role,
        "permissions": permissions_for(role),
        "aud": scope.audience,
    }
    return _encode(claims, expires_delta if expires_delta is not None else scope.access_ttl)


def create_refresh_token(
    account: Account,
    scope: Scope,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str]:
    """
    Create a new JWT refresh token.

    Returns:
        Tuple of (encoded JWT string, token ID)
    """
    claims = {
        "sub": str(account.id),
        "type": REFRESH,
        "aud": scope.audience,
    }
    return _encode(claims, expires_delta if expires_delta is not None else scope.refresh_ttl)


def issue_token_pair(account: Account, scope: Scope) -> TokenPair:
    """Mint a fresh access/refresh pair for an account."""
    access_token, _ = create_access_token(account, scope)
    refresh_token, _ = create_refresh_token(account, scope)
    return TokenPair(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(scope.access_ttl.total_seconds()),
        refresh_expires_in=int(scope.refresh_ttl.total_seconds()),
    )


def verify_token(token: str, audience: str, expected_type: str = ACCESS) -> TokenPayload:
    """
    Verify and decode a JWT.

    Args:
        token: Encoded JWT string
        audience: Audience the token must be addressed to
        expected_type: ACCESS (default) or REFRESH

    Returns:
        Decoded TokenPayload

    Raises:
        ExpiredTokenError: Signature valid but token expired
        InvalidTokenTypeError: Token kind differs from expected_type
        InvalidTokenError: Bad signature, issuer, audience or format
    """
    try:
        claims = jwt.decode(
            token,
            _signing_key(),
            algorithms=[settings.JWT_ALGORITHM],
            audience=audience,
            issuer=settings.JWT_ISSUER,
        )
    except ExpiredSignatureError as e:
        raise ExpiredTokenError(f"Token expired: {e}")
    except JWTError as e:
        raise InvalidTokenError(f"Token validation failed: {e}")

    try:
        payload = TokenPayload(**claims)
    except ValueError as e:
        raise InvalidTokenError(f"Malformed token claims: {e}")

    if payload.kind != expected_type:
        raise InvalidTokenTypeError(f"Expected {expected_type} token, got {payload.kind}")

    return payload
