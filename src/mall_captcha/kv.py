"""Ephemeral key-value storage with TTL and destructive reads.

Two backends implement the :class:`KeyValueStore` contract:

- :class:`RedisKeyValueStore` for deployments, shared across processes.
- :class:`MemoryKeyValueStore` for a single process (development and tests).
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from .errors import StoreUnavailable
from .log import short_key

logger = logging.getLogger(__name__)

# Failures that mean "the store could not be reached", not "key missing"
_BACKEND_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class KeyValueStore(Protocol):
    """TTL-keyed string storage consumed by the challenge store."""

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``; raise StoreUnavailable on failure."""

    async def get_and_delete(self, key: str) -> Optional[str]:
        """Return and remove the value, or None if absent or expired."""

    async def ping(self) -> bool:
        """Return True if the store is reachable; never raises."""

    async def close(self) -> None:
        """Release connections."""


def _to_str(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisKeyValueStore:
    """
    Key-value store backed by ``redis.asyncio``.

    With ``atomic=True`` reads use ``GETDEL`` so concurrent readers of one key
    can never both see the value. Servers older than Redis 6.2 lack that
    command; with ``atomic=False`` the read is a ``GET`` followed by ``DEL``,
    and two racing readers may both observe the value. Protocol safety does
    not depend on which reader wins.

    Example:
        >>> client = redis.from_url("redis://localhost:6379/0", decode_responses=True)
        >>> kv = RedisKeyValueStore(client)
        >>> await kv.set("edu.mall:captcha:challenge:abc", "{}", 120)
    """

    def __init__(self, client: "redis.Redis", atomic: bool = True):
        self._client = client
        self.atomic = atomic

    @classmethod
    def from_url(cls, url: str, atomic: bool = True) -> "RedisKeyValueStore":
        """Create a store with its own connection pool."""
        return cls(redis.from_url(url, decode_responses=True), atomic=atomic)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except _BACKEND_ERRORS as e:
            logger.error("Redis SET %s failed", short_key(key), exc_info=True)
            raise StoreUnavailable(str(e)) from e

    async def get_and_delete(self, key: str) -> Optional[str]:
        try:
            if self.atomic:
                value = await self._client.getdel(key)
            else:
                value = await self._client.get(key)
                if value is not None:
                    await self._client.delete(key)
        except _BACKEND_ERRORS as e:
            logger.error("Redis GETDEL %s failed", short_key(key), exc_info=True)
            raise StoreUnavailable(str(e)) from e

        if value is None:
            return None
        return _to_str(value)

    async def ping(self) -> bool:
        """Return True if the server answers PING."""
        try:
            return bool(await self._client.ping())
        except _BACKEND_ERRORS:
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._client.aclose()


class MemoryKeyValueStore:
    """
    In-process key-value store with lazy TTL expiry.

    Entries past their deadline are never returned, whether or not they were
    purged. ``clock`` returns seconds and can be replaced to simulate time
    passing in tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}  # key -> (value, expires_at)

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._purge()
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def get_and_delete(self, key: str) -> Optional[str]:
        # dict.pop has no await point, so only one caller can win the entry
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            return None
        return value

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()

    def _purge(self) -> None:
        """Drop expired entries."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for k in expired:
            del self._entries[k]
