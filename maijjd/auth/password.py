"""
Maijjd - Password Hashing Utilities

Password hashing using bcrypt.
Work factor comes from settings.BCRYPT_ROUNDS and defaults to 12.

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- bcrypt.checkpw compares digests in constant time
- Supports hash upgrades on login
"""

from typing import Optional

import bcrypt

from maijjd.config import settings


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password
        rounds: Work factor override (defaults to settings.BCRYPT_ROUNDS)

    Returns:
        bcrypt hash string (includes salt)

    Example:
        >>> hashed = hash_password("SecureP@ss123")
        >>> hashed.startswith("$2b$")
        True
    """
    password_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Args:
        plain_password: Plaintext password to verify
        hashed_password: bcrypt hash to check against

    Returns:
        True if password matches, False otherwise
    """
    try:
        password_bytes = plain_password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, TypeError):
        # Invalid hash format
        return False


def needs_rehash(hashed_password: str, target_work_factor: Optional[int] = None) -> bool:
    """
    Check if a password hash needs to be upgraded.

    Args:
        hashed_password: Existing bcrypt hash
        target_work_factor: Desired work factor (defaults to settings.BCRYPT_ROUNDS)

    Returns:
        True if hash should be regenerated

    Example:
        # After increasing BCRYPT_ROUNDS from 10 to 12:
        >>> needs_rehash(old_hash)  # Generated with factor 10
        True
    """
    target = target_work_factor or settings.BCRYPT_ROUNDS
    try:
        # bcrypt hash format: $2b$XX$...
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target
    except (ValueError, IndexError):
        # Not a valid bcrypt hash, definitely needs rehash
        return True


# Compared against when the account does not exist, so an unknown
# identifier costs the same bcrypt round-trip as a wrong password.
_DUMMY_HASH: Optional[str] = None


def dummy_verify(plain_password: str) -> bool:
    """Burn one bcrypt comparison; always returns False."""
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password("maijjd-dummy-password")
    verify_password(plain_password, _DUMMY_HASH)
    return False
