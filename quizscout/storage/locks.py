"""
Per-owner serialization of asset operations.

Two workers re-processing the same venue must not interleave "delete old,
write new" on one asset directory. With redis available the lock is a
redis lock shared by every worker; otherwise it falls back to a
process-local lock, which only protects threads of one process.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import redis
from redis.exceptions import LockError, RedisError

from quizscout.exceptions import AssetError

logger = logging.getLogger(__name__)

_local_locks: Dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def _local_lock(key: str) -> threading.Lock:
    with _local_locks_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = _local_locks[key] = threading.Lock()
        return lock


class OwnerLocks:
    """
    Factory for per-owner locks.

    Examples:
        >>> locks = OwnerLocks()  # process-local
        >>> with locks.hold("venues", "the-crown"):
        ...     pass
    """

    KEY_PREFIX = "quizscout:asset-lock"

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        timeout: int = 120,
        blocking_timeout: int = 60,
    ):
        self.redis_client = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def key(self, owner_kind: str, owner_slug: str) -> str:
        return f"{self.KEY_PREFIX}:{owner_kind}:{owner_slug}"

    @contextmanager
    def hold(self, owner_kind: str, owner_slug: str) -> Iterator[None]:
        """
        Hold the lock for one owner directory.

        Raises:
            AssetError: (recoverable) when the lock cannot be acquired in time
        """
        key = self.key(owner_kind, owner_slug)

        if self.redis_client is None:
            lock = _local_lock(key)
            if not lock.acquire(timeout=self.blocking_timeout):
                raise AssetError(f"Timed out waiting for {key}", owner=f"{owner_kind}/{owner_slug}", recoverable=True)
            try:
                yield
            finally:
                lock.release()
            return

        redis_lock = self.redis_client.lock(
            key, timeout=self.timeout, blocking_timeout=self.blocking_timeout
        )
        if not redis_lock.acquire():
            raise AssetError(f"Timed out waiting for {key}", owner=f"{owner_kind}/{owner_slug}", recoverable=True)
        try:
            yield
        finally:
            try:
                redis_lock.release()
            except LockError as e:
                # Expired while held; the work itself already finished
                logger.warning(f"Lock {key} expired before release: {e}")

    @contextmanager
    def hold_many(self, owner_kind: str, *owner_slugs: str) -> Iterator[None]:
        """Hold several owner locks, acquired in sorted order."""
        slugs = sorted(set(owner_slugs))
        if not slugs:
            yield
            return
        with self.hold(owner_kind, slugs[0]):
            with self.hold_many(owner_kind, *slugs[1:]):
                yield


def get_owner_locks(settings) -> OwnerLocks:
    """Redis-backed locks when redis answers, process-local locks otherwise."""
    client = None
    if settings.use_redis_locks:
        try:
            client = redis.from_url(
                settings.redis_url,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            client.ping()
        except RedisError as e:
            logger.warning(f"Redis unavailable for asset locks, using local locks: {e}")
            client = None

    return OwnerLocks(client, timeout=settings.asset_lock_timeout)
