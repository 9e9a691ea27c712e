"""
Redis connection used for rate limit counters and OAuth handshake state.

Commands never raise: when Redis is disabled, unreachable, or fails mid-command,
reads return None and writes return False. Callers choose what that means, the
rate limiter fails open while the OAuth start refuses the request.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.commands.core import AsyncScript
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fixed window counter. The first hit in a window starts its expiry, so the
# window and the counter disappear together.
# Returns {allowed, remaining, ttl, retry_after}
FIXED_WINDOW_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
local ttl = redis.call('TTL', KEYS[1])
local limit = tonumber(ARGV[1])

if count > limit then
    return {0, 0, ttl, ttl}
end
return {1, limit - count, ttl, 0}
"""


class RedisClient:
    """Pooled async Redis client that degrades instead of raising."""

    def __init__(self, url: str, enabled: bool = True, pool_size: int = 20) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._client: Redis | None = None
        self._fixed_window: AsyncScript | None = None

    async def connect(self) -> None:
        """Open the pool and register scripts. Leaves the client unconnected on failure."""
        if not self._enabled:
            logger.info("redis_disabled")
            return
        client = Redis.from_pool(
            ConnectionPool.from_url(self._url, max_connections=self._pool_size),
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.warning("redis_connect_failed", extra={"error": str(e)})
            await client.aclose()
            return
        self._client = client
        # evalsha with an automatic reload when Redis has lost the script
        self._fixed_window = client.register_script(FIXED_WINDOW_SCRIPT)
        logger.info("redis_connected")

    async def close(self) -> None:
        """Close the client and its pool."""
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        self._fixed_window = None
        logger.info("redis_closed")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None

    async def _run(self, operation: str, command: Callable[[Redis], Awaitable[T]]) -> T | None:
        if self._client is None:
            return None
        try:
            return await command(self._client)
        except RedisError as e:
            logger.warning("redis_command_failed", extra={"operation": operation, "error": str(e)})
            return None

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        return bool(await self._run("ping", lambda r: r.ping()))

    async def setex(self, key: str, seconds: int, value: str | bytes) -> bool:
        """Set a value with an expiry."""
        return bool(await self._run("setex", lambda r: r.setex(key, seconds, value)))

    async def getdel(self, key: str) -> bytes | None:
        """Read and delete a key in one step."""
        return await self._run("getdel", lambda r: r.getdel(key))

    async def eval_fixed_window(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
    ) -> list[int] | None:
        """
        Count one request against a fixed window.

        Returns:
            [allowed, remaining, ttl, retry_after] or None if Redis is unavailable.
        """
        script = self._fixed_window
        if script is None:
            return None
        return await self._run(
            "fixed_window",
            lambda _r: script(keys=[key], args=[max_requests, window_seconds]),
        )


# Global Redis client state using a container to avoid global statement
class _RedisState:
    """Container for global Redis client state."""

    client: RedisClient | None = None


_state = _RedisState()


def get_redis_client() -> RedisClient | None:
    """Get the global Redis client instance."""
    return _state.client


def set_redis_client(client: RedisClient | None) -> None:
    """Set the global Redis client instance."""
    _state.client = client
