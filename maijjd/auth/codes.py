"""
Maijjd - Verification Codes

Six-digit, purpose-scoped, time-boxed codes proving control of an
email address or phone number. Codes are stored on the account record:

    account.verification_codes = {
        "email": {"code": "123456", "expires_at": "2024-01-01T00:10:00+00:00"},
        "phone": {...},
    }

Invariants:
- At most one live code per purpose; issuing overwrites the previous one
- A code is single-use; consume() deletes it
- An expired code behaves as absent

The caller persists the account after issue() and consume().
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple
import hmac
import secrets

from maijjd.auth.models import Account, VerificationPurpose, utcnow
from maijjd.config import settings


CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Uniformly random decimal code in [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def issue(
    account: Account,
    purpose: VerificationPurpose,
    now: Optional[datetime] = None,
) -> Tuple[str, datetime]:
    """
    Issue a fresh code for a purpose, replacing any prior one.

    Returns:
        Tuple of (code, expires_at)
    """
    now = now or utcnow()
    code = generate_code()
    expires_at = now + timedelta(minutes=settings.VERIFICATION_CODE_EXPIRE_MINUTES)

    # Reassign so the JSON column is flagged dirty
    codes = dict(account.verification_codes or {})
    codes[purpose.value] = {"code": code, "expires_at": expires_at.isoformat()}
    account.verification_codes = codes

    return code, expires_at


def verify(
    account: Account,
    purpose: VerificationPurpose,
    candidate: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check a candidate code without consuming it.

    Returns False if no code is stored for the purpose, if it has
    expired, or if the candidate does not match exactly.
    """
    stored = (account.verification_codes or {}).get(purpose.value)
    if not stored:
        return False

    try:
        expires_at = datetime.fromisoformat(stored["expires_at"])
    except (KeyError, TypeError, ValueError):
        return False

    if (now or utcnow()) > expires_at:
        return False

    return hmac.compare_digest(
        str(stored.get("code", "")).encode("utf-8"),
        str(candidate).encode("utf-8"),
    )


def consume(account: Account, purpose: VerificationPurpose) -> None:
    """Mark the channel verified and delete its code."""
    if purpose == VerificationPurpose.EMAIL:
        account.email_verified = True
    elif purpose == VerificationPurpose.PHONE:
        account.phone_verified = True

    codes = dict(account.verification_codes or {})
    codes.pop(purpose.value, None)
    account.verification_codes = codes
