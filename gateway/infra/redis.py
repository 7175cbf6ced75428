"""
Redis Connection Management

Shared async Redis connection for the Redis credential backend. Callers get
None when Redis is unreachable and decide for themselves whether that is
fatal: loading credentials tolerates it, saving them does not.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from gateway.config import get_settings

logger = logging.getLogger(__name__)

# Key namespace, so several gateways can share one Redis
APP_PREFIX = "wa-gateway:v1:"


def namespaced(key: str) -> str:
    """Prefix a key with the gateway namespace."""
    return f"{APP_PREFIX}{key}"


class RedisClient:
    """
    Lazily connected, process-wide Redis client.

    A failed connect is not cached: the next get_client() call tries again,
    so a Redis that comes up after the gateway is picked up on the next
    credential save.
    """

    _client: Optional[Redis] = None
    _url: Optional[str] = None

    @classmethod
    async def get_client(cls, url: Optional[str] = None) -> Optional[Redis]:
        """
        Return a connected client, or None if Redis cannot be reached.

        Args:
            url: Override for REDIS_URL
        """
        url = url or get_settings().redis_url
        if cls._client is not None and cls._url == url:
            return cls._client

        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5.0,
            socket_timeout=5.0,
            retry_on_timeout=True,
            retry=Retry(ExponentialBackoff(), retries=3),
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error(f"Redis unavailable at {url}: {e}")
            await client.aclose()
            return None

        await cls.close()
        cls._client = client
        cls._url = url
        logger.info("Redis connection established")
        return client

    @classmethod
    async def close(cls) -> None:
        """Close the shared connection, if any."""
        if cls._client is None:
            return
        try:
            await cls._client.aclose()
            logger.info("Redis connection closed")
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            cls._client = None
            cls._url = None


async def get_redis() -> Optional[Redis]:
    """Shared client for REDIS_URL, or None if Redis is unavailable."""
    return await RedisClient.get_client()
