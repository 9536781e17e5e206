"""
Maijjd - Password Reset Tokens

Opaque, single-use, time-boxed tokens authorizing one password change.
Entries live in the injected KeyValueStore (not on the account):

    auth:reset:<token> -> {"email", "phone", "scope", "expires_at"}

Redemption uses get_and_delete, so a token is burned on first use
whatever happens afterwards. Entries are kept in the store for twice
their lifetime so that a late redemption is reported as expired rather
than unknown; after that the store purges them.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
import json
import secrets

from maijjd.auth.kv import KeyValueStore
from maijjd.auth.models import utcnow
from maijjd.config import settings
from maijjd.errors import ExpiredResetToken, ForbiddenScope, InvalidResetToken
from maijjd.logging import get_logger


logger = get_logger(__name__)

KEY_PREFIX = "auth:reset:"


@dataclass
class ResetTokenEntry:
    """Identity and scope a reset token was issued for."""
    scope: str
    expires_at: datetime
    email: Optional[str] = None
    phone: Optional[str] = None

    def to_json(self) -> str:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "ResetTokenEntry":
        data = json.loads(raw)
        return cls(
            scope=data["scope"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            email=data.get("email"),
            phone=data.get("phone"),
        )


class ResetTokenIssuer:
    """Issues and redeems reset tokens against a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        lifetime: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.lifetime = lifetime or timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        self.clock = clock

    async def issue(
        self,
        *,
        scope: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> str:
        """
        Create a token bound to an identity and scope.

        Returns:
            URL-safe token (256 bits of entropy)
        """
        token = secrets.token_urlsafe(32)
        entry = ResetTokenEntry(
            scope=scope,
            expires_at=self.clock() + self.lifetime,
            email=email,
            phone=phone,
        )
        ttl = int(self.lifetime.total_seconds()) * 2
        await self.store.set(KEY_PREFIX + token, entry.to_json(), ttl)
        return token

    async def consume(self, token: str, expected_scope: str) -> ResetTokenEntry:
        """
        Redeem a token. The token is deleted whatever the outcome.

        Raises:
            InvalidResetToken: Unknown, already used or malformed
            ExpiredResetToken: Past its expiry
            ForbiddenScope: Issued for a different scope
        """
        if not token:
            raise InvalidResetToken()

        raw = await self.store.get_and_delete(KEY_PREFIX + token)
        if raw is None:
            raise InvalidResetToken()

        try:
            entry = ResetTokenEntry.from_json(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("auth.reset.malformed_entry")
            raise InvalidResetToken()

        if self.clock() > entry.expires_at:
            raise ExpiredResetToken()

        if entry.scope != expected_scope:
            logger.warning(
                "auth.reset.scope_mismatch",
                issued_scope=entry.scope,
                expected_scope=expected_scope,
            )
            raise ForbiddenScope()

        return entry
