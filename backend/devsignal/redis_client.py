"""Shared Redis connection. Optional: returns None when REDIS_URL is unset."""

import logging
from typing import Optional

import redis.asyncio as redis

from devsignal.config import settings

logger = logging.getLogger(__name__)

_client: Optional[redis.Redis] = None


def get_redis() -> Optional[redis.Redis]:
    """Lazily create the client; connection errors surface on first command."""
    global _client
    if _client is None and settings.REDIS_URL:
        _client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )
        logger.info("Redis client initialized")
    return _client


async def close_redis():
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
