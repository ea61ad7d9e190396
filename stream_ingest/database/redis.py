"""Redis integration for short-lived per-video leases.

This module provides:
- Redis connection management with connection pooling
- Owner-tokened leases (SET NX EX) with safe compare-and-delete release
- In-memory fallback when Redis is disabled or unreachable
- Health check capabilities

Usage:
    lease_manager = get_lease_manager()

    token = await lease_manager.acquire("analysis", uid, ttl=180)
    if token is None:
        ...  # someone else holds it
    try:
        ...
    finally:
        await lease_manager.release("analysis", uid, token)
"""

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from redis.asyncio import ConnectionPool
from redis.exceptions import RedisError

from stream_ingest.core.config import get_settings

logger = logging.getLogger(__name__)

# Delete only if the caller still owns the lease
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class LeaseManager:
    """Lease manager backed by Redis with graceful in-memory degradation.

    The in-memory fallback only coordinates requests within one process.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        redis_db: int | None = None,
        key_prefix: str | None = None,
        enabled: bool | None = None,
        health_check_timeout: float = 5.0,
    ) -> None:
        """Initialize lease manager.

        Args:
            redis_url: Redis connection URL (redis://localhost:6379)
            redis_db: Redis database number
            key_prefix: Prefix for all keys (e.g., "stream_ingest:lease:...")
            enabled: Use Redis at all; False keeps everything in memory
            health_check_timeout: Timeout for connects and health checks in seconds
        """
        settings = get_settings()

        self.redis_url = redis_url or settings.redis_url
        self.redis_db = settings.redis_db if redis_db is None else redis_db
        self.key_prefix = key_prefix or settings.redis_key_prefix
        self.enabled = settings.redis_enabled if enabled is None else enabled
        self.health_check_timeout = health_check_timeout

        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._available = False
        self._memory: dict[str, tuple[str, float]] = {}

    async def connect(self) -> bool:
        """Establish Redis connection with connection pooling.

        Returns:
            True if connection successful, False otherwise
        """
        if not self.enabled:
            return False
        if self._client is not None:
            return self._available

        try:
            self._pool = ConnectionPool.from_url(
                self.redis_url,
                db=self.redis_db,
                decode_responses=True,
                max_connections=20,
                socket_timeout=self.health_check_timeout,
                socket_connect_timeout=self.health_check_timeout,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            self._available = True

            logger.info(
                "Redis connection established",
                extra={"url": self._redis_url_safe()},
            )
            return True

        except (RedisError, OSError) as e:
            logger.warning(
                "Redis connection failed, leases fall back to memory: %s",
                e,
            )
            self._available = False
            self._client = None
            self._pool = None
            return False

    async def disconnect(self) -> None:
        """Close Redis connection and pool."""
        if self._client:
            try:
                await self._client.aclose()
            except (RedisError, OSError) as e:
                logger.warning("Error closing Redis client: %s", e)
            finally:
                self._client = None
                self._available = False

        if self._pool:
            try:
                await self._pool.disconnect()
            except (RedisError, OSError) as e:
                logger.warning("Error disconnecting Redis pool: %s", e)
            finally:
                self._pool = None

    def _redis_url_safe(self) -> str:
        """Return sanitized Redis URL for logging (no password)."""
        if "://" not in self.redis_url:
            return self.redis_url
        scheme, rest = self.redis_url.split("://", 1)
        if "@" in rest:
            userinfo, host = rest.split("@", 1)
            if ":" in userinfo:
                username, _ = userinfo.split(":", 1)
                return f"{scheme}://{username}:***@{host}"
            return f"{scheme}://***@{host}"
        return self.redis_url

    def _make_key(self, kind: str, identifier: str) -> str:
        """Create prefixed Redis key, e.g. ``stream_ingest:lease:analysis:<uid>``."""
        return f"{self.key_prefix}:lease:{kind}:{identifier}"

    # Lease Operations

    async def acquire(self, kind: str, identifier: str, ttl: int) -> str | None:
        """Try to take a lease.

        Args:
            kind: Lease namespace (e.g., "analysis")
            identifier: Resource identifier
            ttl: Lease lifetime in seconds; expires even if never released

        Returns:
            Owner token on success, None if already held
        """
        key = self._make_key(kind, identifier)
        token = secrets.token_hex(16)

        if self._available and self._client is not None:
            try:
                acquired = await self._client.set(key, token, nx=True, ex=ttl)
                return token if acquired else None
            except (RedisError, OSError) as e:
                logger.error("Redis lease acquire failed, using memory: %s", e)
                self._available = False

        now = time.monotonic()
        held = self._memory.get(key)
        if held is not None and held[1] > now:
            return None
        self._memory[key] = (token, now + ttl)
        return token

    async def release(self, kind: str, identifier: str, token: str) -> bool:
        """Release a lease if ``token`` still owns it.

        Returns:
            True if released, False otherwise
        """
        key = self._make_key(kind, identifier)

        held = self._memory.get(key)
        if held is not None and held[0] == token:
            del self._memory[key]
            return True

        if self._client is not None:
            try:
                result = await self._client.eval(RELEASE_SCRIPT, 1, key, token)
                return bool(result)
            except (RedisError, OSError) as e:
                logger.error("Redis lease release failed: %s", e)
        return False

    async def is_held(self, kind: str, identifier: str) -> bool:
        key = self._make_key(kind, identifier)
        held = self._memory.get(key)
        if held is not None and held[1] > time.monotonic():
            return True
        if self._available and self._client is not None:
            try:
                return bool(await self._client.exists(key))
            except (RedisError, OSError) as e:
                logger.error("Redis lease lookup failed: %s", e)
        return False

    # Health Check

    async def health_check(self) -> dict[str, Any]:
        """Perform Redis health check.

        Returns:
            Health status dictionary
        """
        result: dict[str, Any] = {
            "status": "unhealthy",
            "latency_ms": 0,
            "available": False,
            "fallback": "memory",
        }

        if not self.enabled:
            result["status"] = "disabled"
            return result

        if self._client is None and not await self.connect():
            return result

        try:
            start = datetime.now(timezone.utc)
            await self._client.ping()  # type: ignore[union-attr]
            latency = (datetime.now(timezone.utc) - start).total_seconds() * 1000

            result["status"] = "healthy"
            result["latency_ms"] = round(latency, 2)
            result["available"] = True
            result.pop("fallback")
            self._available = True

        except (RedisError, OSError) as e:
            result["error"] = str(e)
            self._available = False

        return result

    @property
    def is_available(self) -> bool:
        """Check if Redis is available."""
        return self._available


# Global lease manager instance
_lease_manager: LeaseManager | None = None


def get_lease_manager() -> LeaseManager:
    """Get or create the global lease manager.

    Returns:
        LeaseManager instance
    """
    global _lease_manager
    if _lease_manager is None:
        _lease_manager = LeaseManager()
    return _lease_manager


async def init_redis() -> LeaseManager:
    """Initialize Redis connection.

    Returns:
        LeaseManager instance
    """
    manager = get_lease_manager()
    await manager.connect()
    return manager


async def close_redis() -> None:
    """Close Redis connection."""
    manager = get_lease_manager()
    await manager.disconnect()
