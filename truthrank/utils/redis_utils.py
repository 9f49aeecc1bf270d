"""
Redis utility module for centralized Redis configuration and connection logic.

Redis is optional for the engine: it only backs the distributed batch-job lock.
Without a configured URL the jobs run unlocked, which is safe for a single
scheduler process.
"""

import logging
import uuid
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from truthrank.config import Config

logger = logging.getLogger(__name__)


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def get_secure_redis_url() -> Optional[str]:
        """Get Redis URL with security validation for production deployments."""
        redis_url = Config.REDIS_URL
        if not redis_url:
            logger.info("REDIS_URL not set; batch job locking disabled")
            return None

        if RedisUtils._validate_redis_security(redis_url):
            return redis_url

        logger.error("REDIS_URL contains insecure configuration")
        return None

    @staticmethod
    def _validate_redis_security(redis_url: str) -> bool:
        """Validate that Redis URL meets security requirements."""
        if not redis_url:
            return False

        if not Config.DEBUG:
            # Production mode - enforce strict security
            if not redis_url.startswith('rediss://'):
                logger.error("Production Redis must use rediss:// (TLS) protocol")
                return False
            if '@' not in redis_url:
                logger.error("Production Redis must include authentication credentials")
                return False
        elif not redis_url.startswith(('redis://localhost', 'redis://127.0.0.1', 'rediss://')):
            logger.warning(f"Potentially insecure Redis URL in development: {redis_url}")

        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Create a Redis client with secure configuration."""
        redis_url = RedisUtils.get_secure_redis_url()
        if not redis_url:
            return None

        try:
            client = redis.from_url(redis_url)
            # Test connection
            await client.ping()
            logger.info("Successfully connected to Redis")
            return client
        except RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            return None


# Owner-checked delete and expire, run atomically inside Redis
RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

EXTEND_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('expire', KEYS[1], ARGV[2])
end
return 0
"""


class JobLock:
    """
    Best-effort distributed lock for batch jobs (SET NX EX).

    Without a client every acquire succeeds, which is correct for a single
    scheduler process. The TTL bounds how long a crashed holder blocks others;
    long runs call extend() once per page to keep it alive.
    """

    def __init__(self, client: Optional[redis.Redis], name: str, ttl_seconds: int):
        self.client = client
        self.key = f"truthrank:lock:{name}"
        self.ttl_seconds = ttl_seconds
        self._token: Optional[str] = None

    async def acquire(self) -> bool:
        if self.client is None:
            return True
        token = uuid.uuid4().hex
        try:
            acquired = await self.client.set(self.key, token, nx=True, ex=self.ttl_seconds)
        except RedisError as e:
            logger.error(f"Could not acquire lock {self.key}: {e}")
            return False
        if acquired:
            self._token = token
            return True
        return False

    async def extend(self) -> bool:
        """Reset the TTL while the lock is still ours. False means it was lost."""
        if self.client is None:
            return True
        if self._token is None:
            return False
        try:
            extended = await self.client.eval(EXTEND_SCRIPT, 1, self.key, self._token, self.ttl_seconds)
        except RedisError as e:
            logger.warning(f"Could not extend lock {self.key}: {e}")
            return False
        if not extended:
            logger.warning(f"Lock {self.key} expired before the job finished")
            return False
        return True

    async def release(self):
        if self.client is None or self._token is None:
            return
        token, self._token = self._token, None
        try:
            await self.client.eval(RELEASE_SCRIPT, 1, self.key, token)
        except RedisError as e:
            logger.warning(f"Could not release lock {self.key}: {e}")
