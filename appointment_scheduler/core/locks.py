"""Per-provider locks for the check-and-reserve critical section.

Every write that touches a provider's appointment set runs inside
``locks.hold(provider_id)``. Different providers never share a lock.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from redis.exceptions import LockError, RedisError

from .config import settings
from .exceptions import SchedulingBusy

logger = logging.getLogger(__name__)


class LocalProviderLocks:
    """In-process keyed locks, one ``threading.Lock`` per provider id."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, provider_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = self._locks[provider_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, provider_id: int) -> Iterator[None]:
        lock = self._lock_for(provider_id)
        if not lock.acquire(timeout=self.timeout):
            logger.warning(
                f"Provider lock busy for provider {provider_id} after {self.timeout}s"
            )
            raise SchedulingBusy(
                "Provider schedule is busy, retry shortly",
                provider_id=provider_id,
            )
        try:
            yield
        finally:
            lock.release()


class RedisProviderLocks:
    """Distributed provider locks for deployments with several workers.

    The lock expires after ``ttl`` seconds even if its holder is still inside
    the critical section, so ``ttl`` must exceed the slowest expected
    check-and-commit. It must also be longer than ``timeout``.
    """

    def __init__(
        self,
        redis_client,
        timeout: Optional[float] = None,
        ttl: Optional[int] = None,
    ):
        """
        Args:
            redis_client: Synchronous Redis client (redis-py)
            timeout: Seconds to wait for the lock before giving up
            ttl: Seconds after which an abandoned lock expires
        """
        self.redis = redis_client
        self.timeout = settings.LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self.ttl = settings.LOCK_TTL_SECONDS if ttl is None else ttl
        if self.ttl <= self.timeout:
            raise ValueError(
                f"Lock TTL ({self.ttl}s) must be longer than the lock timeout ({self.timeout}s)"
            )

    @contextmanager
    def hold(self, provider_id: int) -> Iterator[None]:
        lock_key = f"provider_lock:{provider_id}"
        lock = self.redis.lock(lock_key, timeout=self.ttl, blocking_timeout=self.timeout)

        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.error(f"Redis unavailable while locking {lock_key}: {e}")
            raise SchedulingBusy(
                "Provider lock service unavailable, retry shortly",
                provider_id=provider_id,
            ) from e

        if not acquired:
            logger.warning(f"Provider lock busy: {lock_key} after {self.timeout}s")
            raise SchedulingBusy(
                "Provider schedule is busy, retry shortly",
                provider_id=provider_id,
            )

        logger.debug(f"Acquired provider lock: {lock_key}")
        try:
            yield
        finally:
            try:
                lock.release()
                logger.debug(f"Released provider lock: {lock_key}")
            except LockError as e:
                # Expired before release; another worker may have held it meanwhile
                logger.error(f"Lock {lock_key} expired before release: {e}")


def build_provider_locks(redis_client=None):
    """Create the lock backend selected by ``LOCK_BACKEND``."""
    if settings.LOCK_BACKEND == "redis":
        from .database import get_redis

        return RedisProviderLocks(redis_client or get_redis())
    return LocalProviderLocks()


# Shared by every request in this process
provider_locks = build_provider_locks()
