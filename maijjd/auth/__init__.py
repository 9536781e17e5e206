"""
Maijjd - Authentication Package

Credential lifecycle for general accounts and administrators:
- bcrypt password hashing with cost upgrades on login
- Stateless JWT access/refresh tokens, audience-separated per scope
- Single-use verification codes and password reset tokens
- Login and verification lockouts backed by a shared key-value store
"""

from maijjd.auth.models import Account, AccountStatus, LoginAttempt, Role, VerificationPurpose
from maijjd.auth.scopes import Scope, admin_scope, general_scope
from maijjd.auth.service import AuthService
from maijjd.auth.dependencies import get_current_admin, get_current_user, require_permission

__all__ = [
    "Account",
    "AccountStatus",
    "LoginAttempt",
    "Role",
    "VerificationPurpose",
    "Scope",
    "admin_scope",
    "general_scope",
    "AuthService",
    "get_current_admin",
    "get_current_user",
    "require_permission",
]
