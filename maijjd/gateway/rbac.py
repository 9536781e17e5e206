"""
Maijjd - Role-Based Access Control (RBAC)

Role-to-permission mapping used when minting access tokens and when
guarding admin-only routes. Policies are defined in policies.yaml.

Security:
- Deny-by-default: unknown roles receive no permissions
- Role hierarchy is NOT inherited (explicit grants only)
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import yaml


class Permission(str, Enum):
    """Permissions carried in the access token's permissions claim."""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    USER = "user"
    MODERATE = "moderate"
    ADMIN = "admin"
    MANAGE_USERS = "manage_users"
    MANAGE_APP = "manage_app"


class RBACPolicy:
    """
    Manages role-to-permission mappings loaded from policies.yaml.

    Singleton; the file is read once per process.
    """

    _instance: Optional["RBACPolicy"] = None
    _policies: Dict[str, List[str]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_policies()
        return cls._instance

    def _load_policies(self):
        """Load policies from YAML configuration file."""
        policy_path = Path(__file__).parent / "policies.yaml"

        if not policy_path.exists():
            # Default deny-all if no policy file
            self._policies = {}
            return

        with open(policy_path, "r") as f:
            config = yaml.safe_load(f)

        self._policies = {
            role: list(perms)
            for role, perms in (config.get("roles") or {}).items()
        }

    def has_permission(self, role: str, permission: Permission) -> bool:
        """
        Check if a role has a specific permission.

        Args:
            role: Account role
            permission: Required permission

        Returns:
            True if permitted, False otherwise
        """
        return permission.value in self._policies.get(role, [])

    def permissions_for(self, role: str) -> List[str]:
        """Ordered permission list for a role (empty for unknown roles)."""
        return list(self._policies.get(role, []))


def permissions_for(role: str) -> List[str]:
    """Shortcut used by the token issuer."""
    return RBACPolicy().permissions_for(role)
