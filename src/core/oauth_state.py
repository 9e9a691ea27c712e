"""
Ephemeral OAuth handshake state.

The authorization redirect carries a random state value; what the callback needs
to know (provider, post-login redirect, popup mode) is kept in Redis under that
value for a few minutes and consumed exactly once.
"""
import json
import logging
import secrets
from dataclasses import asdict, dataclass

from core.redis import get_redis_client
from services.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)

HANDSHAKE_TTL_SECONDS = 600
DEFAULT_REDIRECT_PATH = "/profile"


@dataclass
class OAuthHandshake:
    """Context carried from the authorization redirect to the callback."""

    provider: str
    redirect_path: str = DEFAULT_REDIRECT_PATH
    popup: bool = False


def _key(state: str) -> str:
    return f"oauth_state:{state}"


def sanitize_redirect_path(value: str | None) -> str:
    """
    Restrict post-login redirects to same-site paths.

    Anything that is not a plain absolute path (including protocol-relative
    '//host' and backslash tricks) falls back to the default.
    """
    if not value or not value.startswith("/"):
        return DEFAULT_REDIRECT_PATH
    if value.startswith("//") or "\\" in value:
        return DEFAULT_REDIRECT_PATH
    return value


async def save_handshake(handshake: OAuthHandshake) -> str:
    """
    Store the handshake and return the state value to send to the provider.

    Raises:
        ServiceUnavailableError: If Redis is unavailable. OAuth cannot proceed
            without somewhere to keep the handshake.
    """
    redis_client = get_redis_client()
    state = secrets.token_urlsafe(32)
    stored = False
    if redis_client is not None:
        stored = await redis_client.setex(
            _key(state), HANDSHAKE_TTL_SECONDS, json.dumps(asdict(handshake)),
        )
    if not stored:
        logger.warning("redis_unavailable", extra={"operation": "oauth_state"})
        raise ServiceUnavailableError("OAuth login is temporarily unavailable")
    return state


async def consume_handshake(state: str | None) -> OAuthHandshake | None:
    """
    Fetch and delete the handshake for a state value.

    Returns None for missing, expired, already used or malformed state.
    """
    if not state:
        return None
    redis_client = get_redis_client()
    if redis_client is None:
        return None
    raw = await redis_client.getdel(_key(state))
    if raw is None:
        return None
    try:
        data = json.loads(raw)
        return OAuthHandshake(
            provider=str(data["provider"]),
            redirect_path=sanitize_redirect_path(data.get("redirect_path")),
            popup=bool(data.get("popup", False)),
        )
    except (ValueError, KeyError, TypeError):
        logger.warning("oauth_state_malformed")
        return None
