"""
Maijjd - Attempt Limiter

Brute force protection for logins and verification codes.

Failures are counted per key (scope + identifier, client IP, or
purpose + identifier) in the KeyValueStore. Once a key reaches
max_attempts inside the window it is locked for lockout_seconds, and
callers must refuse the operation before comparing any secret.
"""

from typing import Optional

from maijjd.auth.kv import KeyValueStore
from maijjd.errors import TooManyAttempts


class AttemptLimiter:
    """
    Counts failures and enforces temporary lockouts.

    Attributes:
        max_attempts: Failures allowed before lockout
        lockout_seconds: Lock duration; also the counting window
    """

    def __init__(self, store: KeyValueStore, max_attempts: int, lockout_seconds: int):
        self.store = store
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds

    @staticmethod
    def _attempts_key(key: str) -> str:
        return f"attempts:{key}"

    @staticmethod
    def _lock_key(key: str) -> str:
        return f"lockout:{key}"

    async def is_locked(self, key: str) -> bool:
        return await self.store.get(self._lock_key(key)) is not None

    async def ensure_not_locked(self, *keys: Optional[str]) -> None:
        """Raise TooManyAttempts if any of the keys is locked."""
        for key in keys:
            if key and await self.is_locked(key):
                raise TooManyAttempts(retry_after=self.lockout_seconds)

    async def record_failure(self, key: str) -> bool:
        """
        Count one failure.

        Returns:
            True if this failure triggered a lockout
        """
        attempts = await self.store.incr(self._attempts_key(key), self.lockout_seconds)
        if attempts >= self.max_attempts:
            await self.store.set(self._lock_key(key), "1", self.lockout_seconds)
            await self.store.delete(self._attempts_key(key))
            return True
        return False

    async def clear(self, key: str) -> None:
        """Reset the failure counter after a success."""
        await self.store.delete(self._attempts_key(key))
