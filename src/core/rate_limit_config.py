"""
Rate limiting configuration and types.

This module contains the policy configuration for rate limiting - the "what" limits
to apply, separate from the "how" (enforcement logic in rate_limiter.py).

To adjust rate limits, modify RATE_LIMITS below.
"""
from dataclasses import dataclass
from enum import StrEnum


class RateLimitedRoute(StrEnum):
    """Routes with their own request budget. Values are used in Redis keys."""

    REGISTER = "register"
    VERIFY_EMAIL = "verify_email"
    VERIFICATION_STATUS = "verification_status"
    RESEND_VERIFICATION = "resend_verification"


@dataclass
class RateLimitConfig:
    """Fixed-window budget for one route."""

    max_requests: int
    window_seconds: int
    message: str


@dataclass
class RateLimitResult:
    """Result of a rate limit check with all info needed for headers."""

    allowed: bool
    limit: int  # Max requests in current window
    remaining: int  # Requests remaining in current window
    reset: int  # Unix timestamp when window resets
    retry_after: int  # Seconds until retry allowed (0 if allowed)


# ---------------------------------------------------------------------------
# Rate Limit Policy Configuration
# ---------------------------------------------------------------------------
# Budgets are per client address. Modify these values to tune per deployment.

RATE_LIMITS: dict[RateLimitedRoute, RateLimitConfig] = {
    RateLimitedRoute.REGISTER: RateLimitConfig(
        10, 15 * 60, "Too many registrations from this IP, please try again later.",
    ),
    RateLimitedRoute.VERIFY_EMAIL: RateLimitConfig(
        30, 10 * 60, "Too many verification attempts, please slow down.",
    ),
    RateLimitedRoute.VERIFICATION_STATUS: RateLimitConfig(
        60, 60, "Polling too frequently.",
    ),
    RateLimitedRoute.RESEND_VERIFICATION: RateLimitConfig(
        3, 30 * 60, "Too many resend attempts, wait before trying again.",
    ),
}
