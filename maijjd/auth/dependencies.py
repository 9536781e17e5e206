"""
Maijjd - Security Dependencies

FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/profile")
    async def profile(user: AuthenticatedAccount = Depends(get_current_user)):
        ...

    @router.post("/users/reset-password")
    @require_permission(Permission.MANAGE_USERS)
    async def force(user: AuthenticatedAccount = Depends(get_current_admin)):
        ...

Security:
- Access tokens are checked for signature, issuer, audience, expiry and kind
- Admin endpoints accept only admin-audience tokens held by admins
- RBAC is deny-by-default
"""

from functools import wraps
from typing import Callable, Iterator, List, Optional
from uuid import UUID

from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from maijjd.auth.models import Role
from maijjd.auth.scopes import Scope, admin_scope, general_scope
from maijjd.auth.service import AuthService, ClientInfo
from maijjd.auth.store import AccountStore
from maijjd.auth.tokens import InvalidTokenError, InvalidTokenTypeError, verify_token
from maijjd.errors import (
    AuthenticationRequired,
    Forbidden,
    InvalidAccessToken,
    InvalidTokenType,
)
from maijjd.gateway.rbac import Permission, RBACPolicy
from maijjd.logging import get_logger


logger = get_logger(__name__)

# HTTP Bearer scheme for JWT extraction
security = HTTPBearer(auto_error=False)


class AuthenticatedAccount(BaseModel):
    """
    Represents a validated bearer token holder.

    Available in route handlers via Depends(get_current_user).
    """
    account_id: UUID
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    permissions: List[str] = []
    token_id: str  # jti for audit correlation


def get_client_info(request: Request) -> ClientInfo:
    """Extract client IP and user agent from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ClientInfo(ip_address=ip, user_agent=request.headers.get("User-Agent"))


def _build_service(request: Request, db, scope: Scope, background: BackgroundTasks) -> AuthService:
    state = request.app.state
    return AuthService(
        store=AccountStore(db),
        reset_tokens=state.reset_tokens,
        notifier=state.notifier,
        login_limiter=state.login_limiter,
        verify_limiter=state.verify_limiter,
        scope=scope,
        clock=state.clock,
        ip_limiter=state.ip_limiter,
        background=background,
    )


def get_general_service(request: Request, background_tasks: BackgroundTasks) -> Iterator[AuthService]:
    """AuthService for the general scope, bound to a request-scoped DB session."""
    db = request.app.state.db_session_factory()
    try:
        yield _build_service(request, db, general_scope(), background_tasks)
    finally:
        db.close()


def get_admin_service(request: Request, background_tasks: BackgroundTasks) -> Iterator[AuthService]:
    """AuthService for the admin scope, bound to a request-scoped DB session."""
    db = request.app.state.db_session_factory()
    try:
        yield _build_service(request, db, admin_scope(), background_tasks)
    finally:
        db.close()


def _bearer_dependency(scope_factory: Callable[[], Scope]):
    async def dependency(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ) -> AuthenticatedAccount:
        """
        Validate the bearer access token for this scope.

        Raises:
            AuthenticationRequired: No Authorization header
            InvalidTokenType: A refresh token was presented
            InvalidAccessToken: Bad or expired token
            Forbidden: Token holder's role is not admitted by the scope
        """
        if not credentials:
            raise AuthenticationRequired()

        scope = scope_factory()
        try:
            payload = verify_token(credentials.credentials, scope.audience)
        except InvalidTokenTypeError:
            raise InvalidTokenType("Token is not an access token")
        except InvalidTokenError as e:
            logger.info("auth.token.rejected", scope=scope.name, reason=str(e))
            raise InvalidAccessToken()

        try:
            account_id = UUID(payload.sub)
            role = Role(payload.role)
        except ValueError:
            raise InvalidAccessToken()

        if not scope.admits(role):
            raise Forbidden("Admin privileges required")

        return AuthenticatedAccount(
            account_id=account_id,
            email=payload.email,
            phone=payload.phone,
            role=role,
            permissions=payload.permissions,
            token_id=payload.jti,
        )

    return dependency


get_current_user = _bearer_dependency(general_scope)
get_current_admin = _bearer_dependency(admin_scope)


def require_permission(permission: Permission):
    """
    Decorator to enforce permission requirements on routes.

    The route must take the authenticated account as a `user` argument.

    Raises:
        AuthenticationRequired: No authenticated account in the call
        Forbidden: Role lacks the permission
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            user: Optional[AuthenticatedAccount] = kwargs.get("user")

            if user is None:
                raise AuthenticationRequired()

            if not RBACPolicy().has_permission(user.role.value, permission):
                logger.warning(
                    "auth.permission.denied",
                    account_id=str(user.account_id),
                    permission=permission.value,
                )
                raise Forbidden(f"Permission denied: {permission.value}")

            return await func(*args, **kwargs)
        return wrapper
    return decorator

