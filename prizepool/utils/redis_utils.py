"""
Redis utility module for centralized Redis configuration and connection logic.

Redis is optional: without REDIS_URL the settlement job relies on running as
a single active process and uses in-process day locks.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from prizepool.config import Config
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def get_secure_redis_url() -> Optional[str]:
        """Get the configured Redis URL if it passes security validation."""
        redis_url = Config.REDIS_URL
        if not redis_url:
            return None
        if not RedisUtils._validate_redis_security(redis_url):
            logger.error("REDIS_URL contains insecure configuration")
            return None
        return redis_url

    @staticmethod
    def _validate_redis_security(redis_url: str) -> bool:
        """Validate that Redis URL meets security requirements."""
        if Config.DEBUG:
            # Development mode - allow anything, warn on plain remote connections
            if not (redis_url.startswith('redis://localhost') or redis_url.startswith('redis://127.0.0.1')
                    or redis_url.startswith('rediss://')):
                logger.warning(f"Potentially insecure Redis URL in development: {redis_url}")
            return True

        # Production mode - enforce strict security
        if not redis_url.startswith('rediss://'):
            logger.error("Production Redis must use rediss:// (TLS) protocol")
            return False
        if '@' not in redis_url:
            logger.error("Production Redis must include authentication credentials")
            return False
        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Create a Redis client with secure configuration, None when unconfigured or unreachable."""
        redis_url = RedisUtils.get_secure_redis_url()
        if not redis_url:
            return None

        client = redis.from_url(redis_url)
        try:
            await client.ping()
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            await client.aclose()
            return None
        logger.info("Successfully connected to Redis")
        return client
