"""
Maijjd - Authentication Scopes

A Scope parameterizes the single authentication orchestrator with the
role family it serves (general accounts vs administrators): which
accounts may log in, what role registration mints, which audience and
lifetimes its tokens carry, and where reset links point.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import FrozenSet, Optional

from maijjd.auth.models import Role
from maijjd.config import settings


GENERAL = "general"
ADMIN = "admin"


@dataclass(frozen=True)
class Scope:
    """
    Attributes:
        name: Role family ("general" or "admin"); tags reset tokens
        audience: JWT aud claim for tokens minted in this scope
        access_ttl / refresh_ttl: Token lifetimes
        login_roles: Roles allowed to log in (None = any role)
        registration_role: Role assigned by self-registration
        requires_admin_key: Whether registration needs ADMIN_CREATION_KEY
        account_key: Key of the account view in response payloads
        account_type: Human-readable account type for metadata
        reset_path: Frontend path of the password reset page
    """
    name: str
    audience: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    login_roles: Optional[FrozenSet[Role]]
    registration_role: Role
    requires_admin_key: bool
    account_key: str
    account_type: str
    reset_path: str

    def admits(self, role: Role) -> bool:
        """Whether an account with this role may authenticate in this scope."""
        return self.login_roles is None or role in self.login_roles

    def reset_url(self, token: str) -> str:
        return f"{settings.FRONTEND_BASE_URL.rstrip('/')}{self.reset_path}?token={token}"


def role_family(role: Role) -> str:
    """Scope name a role belongs to for password resets."""
    return ADMIN if role == Role.ADMIN else GENERAL


def general_scope() -> Scope:
    return Scope(
        name=GENERAL,
        audience=settings.JWT_AUDIENCE,
        access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        login_roles=None,
        registration_role=Role.USER,
        requires_admin_key=False,
        account_key="user",
        account_type="User",
        reset_path="/reset-password",
    )


def admin_scope() -> Scope:
    return Scope(
        name=ADMIN,
        audience=settings.ADMIN_JWT_AUDIENCE,
        access_ttl=timedelta(minutes=settings.ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl=timedelta(days=settings.ADMIN_REFRESH_TOKEN_EXPIRE_DAYS),
        login_roles=frozenset({Role.ADMIN}),
        registration_role=Role.ADMIN,
        requires_admin_key=True,
        account_key="admin",
        account_type="Administrator",
        reset_path="/admin/reset-password",
    )


def scope_named(name: str) -> Scope:
    return admin_scope() if name == ADMIN else general_scope()
