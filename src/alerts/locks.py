"""Per-resource advisory locks for sweeps.

At most one unit of work touches a resource's alerts at a time. When the
lock is already held the caller skips the resource for this pass instead
of waiting; the next sweep picks it up.

Two implementations:
- ``InProcessResourceLocks``: asyncio locks, enough for a single scheduler.
- ``RedisResourceLocks``: ``SET NX EX`` with a per-holder token, for
  several scheduler processes sharing one Redis.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)

_LOCK_PREFIX = "alert:lock"

# Delete only if we still own the key
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class ResourceLocks(ABC):
    """Non-blocking advisory lock keyed by resource id."""

    @abstractmethod
    async def acquire(self, resource_id: str) -> str | None:
        """Try to take the lock; returns a release token or None if held."""

    @abstractmethod
    async def release(self, resource_id: str, token: str) -> None:
        """Release a lock previously acquired with ``token``."""

    @asynccontextmanager
    async def hold(self, resource_id: str) -> AsyncIterator[bool]:
        """Context manager yielding whether the lock was acquired.

        Usage:
            async with locks.hold(resource_id) as acquired:
                if not acquired:
                    return
                ...
        """
        token = await self.acquire(resource_id)
        try:
            yield token is not None
        finally:
            if token is not None:
                await self.release(resource_id, token)


class InProcessResourceLocks(ResourceLocks):
    """Locks held in this process only."""

    def __init__(self) -> None:
        self._held: dict[str, str] = {}
        self._guard = asyncio.Lock()

    async def acquire(self, resource_id: str) -> str | None:
        async with self._guard:
            if resource_id in self._held:
                return None
            token = uuid.uuid4().hex
            self._held[resource_id] = token
            return token

    async def release(self, resource_id: str, token: str) -> None:
        async with self._guard:
            if self._held.get(resource_id) == token:
                del self._held[resource_id]

    def is_held(self, resource_id: str) -> bool:
        return resource_id in self._held


class RedisResourceLocks(ResourceLocks):
    """Locks shared across processes through Redis.

    The key expires after ``ttl_seconds`` so a crashed holder cannot
    block a resource forever. If Redis is unreachable the resource is
    skipped rather than evaluated unlocked.
    """

    def __init__(self, redis_client: Any, ttl_seconds: int = 120) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds

    @staticmethod
    def _key(resource_id: str) -> str:
        return f"{_LOCK_PREFIX}:{resource_id}"

    async def acquire(self, resource_id: str) -> str | None:
        token = uuid.uuid4().hex
        try:
            was_set = await self._redis.set(
                self._key(resource_id), token, nx=True, ex=self._ttl,
            )
        except Exception as e:
            logger.warning("Redis lock acquire failed for %s: %s", resource_id, e)
            return None
        return token if was_set else None

    async def release(self, resource_id: str, token: str) -> None:
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, self._key(resource_id), token)
        except Exception as e:
            # The key still expires on its own
            logger.warning("Redis lock release failed for %s: %s", resource_id, e)
