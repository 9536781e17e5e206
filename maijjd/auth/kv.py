"""
Maijjd - Key-Value Store

Ephemeral keyed storage with TTLs, used for password reset tokens and
attempt counters. Two implementations share the KeyValueStore protocol:

- MemoryKeyValueStore: process-local, for development and tests
- RedisKeyValueStore: shared across server instances (REDIS_URL)
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from maijjd.auth.models import utcnow


class KeyValueStore(Protocol):
    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def get_and_delete(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> None: ...

    async def incr(self, key: str, ttl: int) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class MemoryKeyValueStore:
    """
    In-process store. Expiry is evaluated lazily against the injected
    clock, so tests can advance time without sleeping.

    Single event loop only: individual operations do not await, which
    makes each one atomic with respect to other coroutines.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._data: Dict[str, Tuple[str, datetime]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._data[key] = (value, self._clock() + timedelta(seconds=ttl))

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def get_and_delete(self, key: str) -> Optional[str]:
        value = self._live(key)
        self._data.pop(key, None)
        return value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def incr(self, key: str, ttl: int) -> int:
        """Increment a counter; the TTL starts with the first increment."""
        current = self._live(key)
        if current is None:
            self._data[key] = ("1", self._clock() + timedelta(seconds=ttl))
            return 1
        count = int(current) + 1
        self._data[key] = (str(count), self._data[key][1])
        return count

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RedisKeyValueStore:
    """Redis-backed store; safe across processes and server instances."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self.client.set(key, value, ex=max(1, ttl))

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def get_and_delete(self, key: str) -> Optional[str]:
        # GETDEL (Redis 6.2+) keeps redemption atomic across instances
        return await self.client.getdel(key)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def incr(self, key: str, ttl: int) -> int:
        pipe = self.client.pipeline()
        pipe.incr(key)
        pipe.expire(key, max(1, ttl), nx=True)
        count, _ = await pipe.execute()
        return int(count)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.client.aclose()
