"""
Redis-based rate limiting enforcement.

This module contains the enforcement logic - the "how" of rate limiting.
For configuration (limits per route), see rate_limit_config.py.
"""
import ipaddress
import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from core.config import Settings, get_settings
from core.rate_limit_config import RateLimitedRoute, RateLimitResult
from core.redis import get_redis_client
from services.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


def get_client_ip(request: Request, trusted_proxies: set[str]) -> str:
    """
    Resolve the client address for rate limiting.

    The socket peer is used unless it is a trusted proxy, in which case the
    right-most X-Forwarded-For hop that is not itself a trusted proxy wins.
    Hops further left are client-controlled and ignored.
    """
    peer = request.client.host if request.client else "unknown"
    if peer not in trusted_proxies:
        return peer

    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop in trusted_proxies:
            continue
        try:
            ipaddress.ip_address(hop)
        except ValueError:
            break
        return hop
    return peer


async def check_rate_limit(route: RateLimitedRoute, client_ip: str) -> RateLimitResult:
    """
    Count a request against the route's fixed window and return the outcome.

    Falls back to allowing requests if Redis is unavailable.
    """
    # Import at call time so tests can monkeypatch rate_limit_config.RATE_LIMITS
    from core.rate_limit_config import RATE_LIMITS

    config = RATE_LIMITS[route]
    now = int(time.time())

    redis_client = get_redis_client()
    result = None
    if redis_client is not None and redis_client.is_connected:
        result = await redis_client.eval_fixed_window(
            key=f"rate:{route.value}:{client_ip}",
            max_requests=config.max_requests,
            window_seconds=config.window_seconds,
        )

    if result is None:
        # Redis unavailable - fail open
        logger.warning("redis_unavailable", extra={"operation": "rate_limit"})
        return RateLimitResult(
            allowed=True,
            limit=config.max_requests,
            remaining=config.max_requests,
            reset=0,
            retry_after=0,
        )

    allowed, remaining, ttl, retry_after = result
    return RateLimitResult(
        allowed=bool(allowed),
        limit=config.max_requests,
        remaining=max(0, remaining),
        reset=now + ttl if ttl > 0 else now + config.window_seconds,
        retry_after=max(0, retry_after) if not allowed else 0,
    )


def rate_limit(route: RateLimitedRoute) -> Callable[..., Awaitable[None]]:
    """
    Build a dependency enforcing the route's budget before the handler runs.

    On success the result is stored on request.state for the headers middleware.
    """

    async def dependency(
        request: Request,
        settings: Settings = Depends(get_settings),
    ) -> None:
        from core.rate_limit_config import RATE_LIMITS

        client_ip = get_client_ip(request, settings.trusted_proxies)
        result = await check_rate_limit(route, client_ip)
        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                extra={"route": route.value, "client_ip": client_ip},
            )
            raise RateLimitedError(result, RATE_LIMITS[route].message)
        request.state.rate_limit_info = {
            "limit": result.limit,
            "remaining": result.remaining,
            "reset": result.reset,
        }

    return dependency
