"""
Redis Connection Management

Redis connection with retries and graceful degradation, plus a
distributed lock used to keep reminder scans from overlapping across
processes. Fails open: when Redis is unavailable, callers proceed.
"""

import logging
import math
import secrets
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError, RedisError

from app.config import settings

# Logger
logger = logging.getLogger(__name__)

# App prefix for namespacing (allows multiple apps/versions on same Redis)
APP_PREFIX = "salon-reminders:v1:"

# Scan lock outlives the longest allowed scan by at least this much
SCAN_LOCK_MARGIN_SECONDS = 30


class RedisClient:
    """
    Manages Redis connection as a singleton.

    Features:
    - Connection pooling
    - Automatic retries
    - Timeouts
    - Graceful failure handling
    """

    _client: Optional[Redis] = None
    _connected: bool = False

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get or create Redis client.

        Returns:
            Redis client or None if connection fails
        """
        if cls._client is not None and cls._connected:
            return cls._client

        try:
            # Retry configuration: 3 retries with exponential backoff
            retry = Retry(ExponentialBackoff(), retries=3)

            cls._client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
                retry_on_timeout=True,
                retry=retry,
            )

            # Test connection
            await cls._client.ping()
            cls._connected = True
            logger.info("Redis connection established successfully")
            return cls._client

        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            cls._connected = False
            cls._client = None
            return None
        except Exception as e:
            logger.error(f"Unexpected error connecting to Redis: {e}")
            cls._connected = False
            cls._client = None
            return None

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection."""
        if cls._client is not None:
            try:
                await cls._client.aclose()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                cls._client = None
                cls._connected = False


async def get_redis() -> Optional[Redis]:
    """
    Get the shared Redis client.

    Returns None if Redis is unavailable.
    """
    return await RedisClient.get_client()


# Deletes the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def scan_lock_ttl(scan_timeout_seconds: float, ttl_seconds: Optional[int] = None) -> int:
    """
    Expiry for the scan lock, never shorter than a scan may run.

    Nothing renews the key while a scan is in flight, so a configured TTL
    below the scan timeout (plus margin) is raised to it.

    Args:
        scan_timeout_seconds: Upper bound for one scan pass
        ttl_seconds: Configured TTL (defaults to settings)

    Returns:
        TTL in seconds
    """
    configured = ttl_seconds or settings.reminder_lock_ttl_seconds
    minimum = math.ceil(scan_timeout_seconds) + SCAN_LOCK_MARGIN_SECONDS
    if configured < minimum:
        logger.warning(
            f"Scan lock TTL {configured}s is shorter than scan timeout "
            f"{scan_timeout_seconds}s; using {minimum}s"
        )
        return minimum
    return configured


class ScanLock:
    """
    Redis-based mutual exclusion for reminder scans.

    Key: salon-reminders:v1:lock:{name}

    IMPORTANT: Fails OPEN - if Redis is unavailable, acquire() returns True.
    The conflict-tolerant log insert still prevents duplicate log rows.
    """

    LOCK_PREFIX = f"{APP_PREFIX}lock:"

    def __init__(self, redis_client: Optional[Redis], name: str = "reminder-scan", ttl_seconds: Optional[int] = None):
        self.redis = redis_client
        self.key = f"{self.LOCK_PREFIX}{name}"
        self.ttl_seconds = ttl_seconds or scan_lock_ttl(settings.reminder_scan_timeout_seconds)
        self._token: Optional[str] = None

    @property
    def held(self) -> bool:
        """True if this instance currently owns the Redis key."""
        return self._token is not None

    async def acquire(self) -> bool:
        """
        Try to take the lock without waiting.

        Returns:
            True if acquired (or Redis unavailable), False if held elsewhere
        """
        if self.redis is None:
            logger.warning("Redis unavailable - scan lock bypassed")
            return True

        token = secrets.token_hex(16)
        try:
            acquired = await self.redis.set(
                self.key,
                token,
                nx=True,
                px=self.ttl_seconds * 1000,
            )
        except RedisError as e:
            logger.error(f"Scan lock acquire failed: {e} - proceeding without lock")
            return True

        if acquired:
            self._token = token
            return True

        logger.info(f"Scan lock {self.key} is held by another process")
        return False

    async def release(self) -> bool:
        """
        Release the lock if we still own it.

        Returns:
            True if our key was deleted
        """
        if self.redis is None or self._token is None:
            return False

        token, self._token = self._token, None
        try:
            deleted = await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, token)
            return bool(deleted)
        except RedisError as e:
            logger.error(f"Scan lock release failed: {e}")
            return False


async def get_scan_lock(ttl_seconds: Optional[int] = None) -> ScanLock:
    """
    Get a ScanLock instance.

    Returns ScanLock even if Redis unavailable (fails open).
    """
    client = await get_redis()
    return ScanLock(client, ttl_seconds=ttl_seconds)


async def check_redis_health() -> bool:
    """
    Check Redis connectivity for health checks.

    Returns:
        True if Redis is accessible and responding, False otherwise
    """
    try:
        client = await get_redis()
        if client is None:
            return False

        await client.ping()
        return True

    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False
