"""
Per-account serialization of score recomputation.

Within one process an asyncio.Lock per (organization, account) is enough.
With Redis configured, a lease is also taken so multiple workers serialize.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple
from uuid import UUID

from devsignal.config import settings
from devsignal.exceptions import AccountLockTimeout
from devsignal.redis_client import get_redis

logger = logging.getLogger(__name__)


class AccountLockManager:

    def __init__(self, redis_client=None, timeout: Optional[float] = None):
        self._locks: Dict[Tuple[UUID, UUID], asyncio.Lock] = {}
        # holders plus waiters per key; the lock is dropped when it reaches zero
        self._users: Dict[Tuple[UUID, UUID], int] = {}
        self._redis_client = redis_client
        self.timeout = timeout or settings.SCORE_LOCK_TIMEOUT_SECONDS

    def _checkout(self, key: Tuple[UUID, UUID]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: Tuple[UUID, UUID]) -> None:
        remaining = self._users.get(key, 1) - 1
        if remaining <= 0:
            self._users.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._users[key] = remaining

    @asynccontextmanager
    async def hold(self, organization_id: UUID, account_id: UUID):
        key = (organization_id, account_id)
        lock = self._checkout(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._checkin(key)
            raise AccountLockTimeout(f"Timed out waiting for score lock on account {account_id}")

        lease = None
        try:
            client = self._redis_client or get_redis()
            if client is not None:
                lease = client.lock(
                    f"score:lock:{organization_id}:{account_id}",
                    timeout=self.timeout,
                    blocking_timeout=self.timeout,
                )
                try:
                    acquired = await lease.acquire()
                except Exception as e:
                    # Redis down: the in-process lock still serializes this worker
                    logger.warning(f"Score lease unavailable for account {account_id}: {e}")
                    lease = None
                else:
                    if not acquired:
                        lease = None
                        raise AccountLockTimeout(f"Timed out waiting for score lease on account {account_id}")
            yield
        finally:
            if lease is not None:
                try:
                    await lease.release()
                except Exception as e:
                    logger.warning(f"Failed to release score lease for account {account_id}: {e}")
            lock.release()
            self._checkin(key)


# Singleton instance
account_locks = AccountLockManager()
