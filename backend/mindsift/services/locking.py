"""
Distributed ingestion lock.

At most one ingestion of a given video may run at a time across all server
instances. A lease is an entry ``ingest:{video_id}`` created only if absent
and expiring on its own after a TTL, so a crashed holder never blocks the
video for longer than the TTL.

Components:
-----------
- LeaseManager: the narrow acquire/release interface
- RedisLeaseManager: ``SET key token NX EX ttl`` on Redis; release deletes the
  key only while it still holds this manager's token
- InMemoryLeaseManager: single-process implementation with an injectable clock
- IngestionGuard: async context manager that raises AlreadyInProgress when
  the lease is held and degrades to an in-process set when the lease backend
  is unreachable

Usage:
------
guard = IngestionGuard(RedisLeaseManager(get_redis()))

async with guard.hold("dQw4w9WgXcQ") as lease:
    ...  # lease.degraded is True if the fallback was used
"""

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Optional, Protocol, Set, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from mindsift.core.config import settings
from mindsift.core.errors import AlreadyInProgress
from mindsift.core.logging import get_logger

logger = get_logger(__name__)


class LeaseBackendError(Exception):
    """Raised by a lease manager when its backing store cannot be reached."""


class LeaseManager(Protocol):

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        """Create the lease if absent. True if this caller now holds it."""
        ...

    async def release(self, key: str) -> None:
        """Delete the lease. Releasing an absent lease is a no-op."""
        ...


# ================================
# Redis Lease Manager
# ================================

# Delete the key only if it still holds the caller's token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisLeaseManager:
    """
    Lease manager on Redis ``SET NX EX``; expiry is handled by Redis itself.

    Each acquired lease stores a random token. Release is a compare-and-delete,
    so a holder whose lease already expired cannot delete the lease a later
    holder took.
    """

    def __init__(self, redis: Redis):
        self.redis = redis
        self._tokens: Dict[str, str] = {}

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        token = uuid.uuid4().hex
        try:
            created = await self.redis.set(key, token, nx=True, ex=ttl_seconds)
        except RedisError as e:
            raise LeaseBackendError(str(e)) from e
        if created:
            self._tokens[key] = token
        return bool(created)

    async def release(self, key: str) -> None:
        token = self._tokens.pop(key, None)
        if token is None:
            return
        try:
            await self.redis.eval(RELEASE_SCRIPT, 1, key, token)
        except RedisError as e:
            raise LeaseBackendError(str(e)) from e


# ================================
# In-Memory Lease Manager
# ================================

class InMemoryLeaseManager:
    """
    Lease manager for a single process.

    The check-and-set runs under an asyncio.Lock. ``clock`` returns seconds
    and defaults to time.monotonic; tests inject a fake clock to expire
    leases without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._leases: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            now = self.clock()
            self._purge_expired(now)
            if key in self._leases:
                return False
            self._leases[key] = now + ttl_seconds
            return True

    async def release(self, key: str) -> None:
        async with self._lock:
            self._leases.pop(key, None)

    def is_held(self, key: str) -> bool:
        expires_at = self._leases.get(key)
        return expires_at is not None and expires_at > self.clock()

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, expires_at in self._leases.items() if expires_at <= now]
        for key in expired:
            del self._leases[key]


# ================================
# Ingestion Guard
# ================================

@dataclass(frozen=True)
class Lease:
    """A held ingestion lease. ``degraded`` means the same-process fallback granted it."""

    key: str
    video_id: str
    degraded: bool = False


class IngestionGuard:
    """
    Mutual exclusion for video ingestion.

    Never blocks or queues: a held lease raises AlreadyInProgress at once.
    When the lease backend raises LeaseBackendError, exclusion falls back to
    an in-process set of in-flight ids and the lease is marked degraded.
    """

    def __init__(
        self,
        leases: LeaseManager,
        ttl_seconds: Optional[int] = None,
        prefix: Optional[str] = None,
    ):
        self.leases = leases
        self.ttl_seconds = ttl_seconds or settings.INGESTION_LOCK_TTL_SECONDS
        self.prefix = prefix or settings.INGESTION_LOCK_PREFIX
        self._in_flight: Set[str] = set()

    def key_for(self, video_id: str) -> str:
        return f"{self.prefix}:{video_id}"

    @asynccontextmanager
    async def hold(self, video_id: str) -> AsyncIterator[Lease]:
        lease, fallback_only = await self._acquire(video_id)
        try:
            yield lease
        finally:
            await self._release(lease, fallback_only)

    async def _acquire(self, video_id: str) -> Tuple[Lease, bool]:
        key = self.key_for(video_id)

        # Local holders, degraded ones included, exclude every caller in this process
        if video_id in self._in_flight:
            raise AlreadyInProgress(f"Video {video_id} is already being processed")

        try:
            acquired = await self.leases.acquire(key, self.ttl_seconds)
        except LeaseBackendError as e:
            logger.warning("lock_backend_unavailable", video_id=video_id, key=key, error=str(e))
            self._in_flight.add(video_id)
            return Lease(key=key, video_id=video_id, degraded=True), True

        if not acquired:
            logger.info("ingestion_lock_busy", video_id=video_id, key=key)
            raise AlreadyInProgress(f"Video {video_id} is already being processed")

        self._in_flight.add(video_id)
        logger.debug("ingestion_lock_acquired", video_id=video_id, key=key, ttl=self.ttl_seconds)
        return Lease(key=key, video_id=video_id), False

    async def _release(self, lease: Lease, fallback_only: bool) -> None:
        self._in_flight.discard(lease.video_id)
        if fallback_only:
            return
        try:
            await self.leases.release(lease.key)
        except LeaseBackendError as e:
            # The lease expires on its own after the TTL
            logger.warning("lock_release_failed", video_id=lease.video_id, key=lease.key, error=str(e))
        else:
            logger.debug("ingestion_lock_released", video_id=lease.video_id, key=lease.key)
