"""
Per-transaction advisory locks keyed on transaction_param.

Callbacks for one transaction are serialized; different transactions never
contend. The wait is bounded: a timeout raises LockTimeoutError, which the
webhook answers with the internal-error code instead of hanging.
"""
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

import redis

from app.billing.config import get_lock_ttl_seconds, get_lock_wait_seconds
from app.billing.errors import LockTimeoutError, StorageError
from app.core.config import settings

logger = logging.getLogger(__name__)

LOCK_PREFIX = "click:lock:"


class TransactionLocks(ABC):
    @abstractmethod
    def hold(self, key: str):
        """Context manager: held for the whole lookup-transition-persist sequence."""
        raise NotImplementedError


class RedisTransactionLocks(TransactionLocks):
    """Distributed lock (redis-py Lock): safe across uvicorn workers."""

    def __init__(
        self,
        client: redis.Redis | None = None,
        wait_seconds: float | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.wait_seconds = wait_seconds if wait_seconds is not None else get_lock_wait_seconds()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_lock_ttl_seconds()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.client.lock(
            f"{LOCK_PREFIX}{key}",
            timeout=self.ttl_seconds,
            blocking_timeout=self.wait_seconds,
        )
        try:
            acquired = lock.acquire()
        except redis.RedisError as e:
            raise StorageError(f"lock backend unavailable: {e}") from e
        if not acquired:
            raise LockTimeoutError(f"lock wait timed out for {key}")
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                # TTL истёк раньше release; CAS в store всё равно защитил запись
                logger.warning("click_lock_expired_before_release", extra={"transaction_param": key})
            except redis.RedisError as e:
                logger.warning(
                    "click_lock_release_failed",
                    extra={"transaction_param": key, "error": str(e)},
                )


class LocalTransactionLocks(TransactionLocks):
    """In-process locks for tests and single-process runs."""

    def __init__(self, wait_seconds: float | None = None) -> None:
        self.wait_seconds = wait_seconds if wait_seconds is not None else get_lock_wait_seconds()
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [Lock, holders+waiters]

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=self.wait_seconds):
                raise LockTimeoutError(f"lock wait timed out for {key}")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def active_keys(self) -> set[str]:
        with self._guard:
            return set(self._locks)
