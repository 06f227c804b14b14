"""Keyed mutual exclusion for acquisitions.

Writes to the catalog and the archive ledger are serialized per item id.
Two backends exist:

- LocalKeyedLock: asyncio locks, one per key, dropped when unused.
  Enough when the API, the sweeper and manual triggers share a process.
- RedisKeyedLock: redis-py asyncio locks, for deployments where a Celery
  worker or a CLI acquires alongside the API process.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from redis.exceptions import LockError

from newtube.core.exceptions import LockTimeoutError
from newtube.core.logging import get_logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)


class KeyedLock(ABC):
    """Mutual exclusion keyed by an arbitrary string."""

    @abstractmethod
    def hold(self, key: str, timeout: float | None = None) -> Any:
        """Async context manager holding the lock for ``key``.

        Args:
            key: Lock key (usually a video id)
            timeout: Seconds to wait for the lock (None waits forever)

        Raises:
            LockTimeoutError: If the lock was not obtained in time
        """

    @abstractmethod
    def locked(self, key: str) -> bool:
        """Whether some holder currently owns ``key`` in this process."""


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class LocalKeyedLock(KeyedLock):
    """In-process keyed lock built from reference-counted asyncio locks.

    Example:
        >>> locks = LocalKeyedLock()
        >>> async with locks.hold("dQw4w9WgXcQ"):
        ...     ...
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            try:
                if timeout is None:
                    await entry.lock.acquire()
                else:
                    await asyncio.wait_for(entry.lock.acquire(), timeout=timeout)
            except TimeoutError:
                raise LockTimeoutError(key) from None
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    def locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)


class RedisKeyedLock(KeyedLock):
    """Distributed keyed lock on top of redis-py's asyncio Lock.

    Locks carry a lease so a crashed holder cannot block a key forever.
    While held, a heartbeat renews the lease every third of its length,
    so a sweep that runs longer than one lease keeps the lock.
    """

    def __init__(
        self,
        redis: Redis[Any],
        prefix: str = "newtube:lock:",
        lease_seconds: float = 3600.0,
    ) -> None:
        """Initialize RedisKeyedLock.

        Args:
            redis: Async Redis client (from DI)
            prefix: Key prefix for lock names
            lease_seconds: Lock expiry, renewed while held
        """
        self.redis = redis
        self.prefix = prefix
        self.lease_seconds = lease_seconds
        self._held: set[str] = set()

    async def _renew(self, key: str, lock: Any) -> None:
        while True:
            await asyncio.sleep(self.lease_seconds / 3)
            try:
                await lock.reacquire()
            except LockError as e:
                logger.warning("Lock lease lost", key=key, error=str(e))
                return

    @asynccontextmanager
    async def hold(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        lock = self.redis.lock(
            f"{self.prefix}{key}",
            timeout=self.lease_seconds,
            blocking_timeout=timeout,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise LockTimeoutError(key)
        self._held.add(key)
        heartbeat = asyncio.create_task(self._renew(key, lock))
        try:
            yield
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)
            self._held.discard(key)
            try:
                await lock.release()
            except LockError as e:
                # Lease expired while held; another holder may own it now.
                logger.warning("Lock release failed", key=key, error=str(e))

    def locked(self, key: str) -> bool:
        return key in self._held


__all__ = ["KeyedLock", "LocalKeyedLock", "RedisKeyedLock"]
