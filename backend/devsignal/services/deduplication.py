"""Signal idempotency checks using Redis cache and database."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from devsignal.config import settings
from devsignal.redis_client import get_redis
from devsignal.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)


class DeduplicationService:
    """
    Two-tier idempotency lookup:
        1. Redis cache (fast, best effort)
        2. Database (authoritative)

    Cache failures are logged and fall through to the database.
    """

    def __init__(self, redis_client=None):
        self._redis_client = redis_client

    @property
    def redis_client(self):
        if self._redis_client is None:
            self._redis_client = get_redis()
        return self._redis_client

    @staticmethod
    def generate_cache_key(organization_id: UUID, idempotency_key: str) -> str:
        """Generate cache key for organization+idempotency key combination."""
        return f"signal:idempotency:{organization_id}:{idempotency_key}"

    async def find_existing(
        self,
        organization_id: UUID,
        idempotency_key: str,
        db: AsyncSession
    ) -> Optional[UUID]:
        """Return the id of an already-ingested signal with this key, if any."""
        cache_key = self.generate_cache_key(organization_id, idempotency_key)

        client = self.redis_client
        if client is not None:
            try:
                cached_id = await client.get(cache_key)
                if cached_id:
                    logger.debug(f"Cache hit for idempotency key: {idempotency_key}")
                    return UUID(cached_id)
            except Exception as e:
                logger.warning(f"Redis cache check failed: {e}")

        existing_id = await IdentityStore(db).find_signal_id(organization_id, idempotency_key)
        if existing_id:
            await self.remember(organization_id, idempotency_key, existing_id)
            logger.debug(f"Database duplicate found for key: {idempotency_key}")
        return existing_id

    async def remember(self, organization_id: UUID, idempotency_key: str, signal_id: UUID):
        """Cache a persisted signal id to speed up future duplicate checks."""
        client = self.redis_client
        if client is None:
            return

        cache_key = self.generate_cache_key(organization_id, idempotency_key)
        try:
            await client.setex(cache_key, settings.DEDUP_CACHE_TTL_SECONDS, str(signal_id))
        except Exception as e:
            logger.warning(f"Failed to cache idempotency key {idempotency_key}: {e}")


# Singleton instance
dedup_service = DeduplicationService()
