"""Authentication endpoints: current user, email verification and OAuth login."""
import json
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user, get_email_sender, get_settings
from core.config import Settings
from core.oauth import build_redirect_uri, get_oauth_provider
from core.oauth_state import (
    OAuthHandshake,
    consume_handshake,
    sanitize_redirect_path,
    save_handshake,
)
from core.rate_limit_config import RateLimitedRoute
from core.rate_limiter import rate_limit
from core.security import create_access_token
from models.user import User
from schemas.auth import ResendVerificationRequest, ResendVerificationResponse, VerifyEmailResponse
from schemas.user import UserResponse
from services import oauth_service, verification_service
from services.email_service import EmailSender
from services.exceptions import AppError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> User:
    """Get the current authenticated user's info."""
    return current_user


def _wants_json(request: Request, mode: str | None) -> bool:
    return "application/json" in request.headers.get("accept", "") or mode == "json"


@router.get(
    "/verify-email",
    response_model=VerifyEmailResponse,
    dependencies=[Depends(rate_limit(RateLimitedRoute.VERIFY_EMAIL))],
)
async def verify_email(
    request: Request,
    token: str | None = Query(default=None),
    mode: str | None = Query(default=None),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Consume a verification token.

    API clients (Accept: application/json or mode=json) get a JSON result;
    browsers following the emailed link are redirected to the login page.
    """
    user = await verification_service.verify_email(db, token, settings)
    if _wants_json(request, mode):
        body = VerifyEmailResponse(username=user.username)
        return Response(
            content=body.model_dump_json(by_alias=True),
            media_type="application/json",
        )
    return RedirectResponse(
        f"{settings.frontend_base}/login?verified=1&registered=1&user={quote(user.username)}",
        status_code=302,
    )


@router.post(
    "/resend-verification",
    response_model=ResendVerificationResponse,
    status_code=202,
    dependencies=[Depends(rate_limit(RateLimitedRoute.RESEND_VERIFICATION))],
)
async def resend_verification(
    data: ResendVerificationRequest,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
    email_sender: EmailSender = Depends(get_email_sender),
) -> ResendVerificationResponse:
    """Send a fresh verification email. The answer never reveals whether the address exists."""
    await verification_service.resend_verification(db, data.email, settings, email_sender)
    return ResendVerificationResponse()


@router.get("/{provider}")
async def oauth_start(
    provider: str,
    redirect: str | None = Query(default=None),
    popup: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Send the browser to the provider's consent page."""
    oauth_provider = get_oauth_provider(provider, settings)
    state = await save_handshake(
        OAuthHandshake(
            provider=oauth_provider.name.value,
            redirect_path=sanitize_redirect_path(redirect),
            popup=popup == "1",
        ),
    )
    return RedirectResponse(
        oauth_provider.authorization_url(state, build_redirect_uri(oauth_provider, settings)),
        status_code=302,
    )


def popup_response_html(token: str, redirect_path: str, origin: str) -> str:
    """Page that hands the token to the opener window and closes itself."""
    message = json.dumps({"source": "oauth-popup", "token": token, "redirect": redirect_path})
    # Keep a "</script>" in any value from terminating the script block
    message = message.replace("<", "\\u003c")
    target = json.dumps(origin).replace("<", "\\u003c")
    return (
        "<!DOCTYPE html><html><head><title>Signing in...</title></head>"
        '<body style="background:#0f1417;color:#fff;font-family:system-ui;display:flex;'
        'align-items:center;justify-content:center;min-height:100vh;">'
        "<script>\n(function(){\n"
        "  function send(){\n"
        "    if (window.opener) {\n"
        f"      try {{ window.opener.postMessage({message}, {target}); }} catch(e){{}}\n"
        "    }\n"
        "    window.close();\n"
        "  }\n"
        "  send();\n"
        "  setTimeout(send, 300);\n"
        "})();\n</script>"
        "<div>Completing sign in...</div></body></html>"
    )


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Finish the OAuth dance and hand a bearer token to the frontend.

    Every failure lands on the frontend login page with error=oauth.
    """
    failure = RedirectResponse(f"{settings.frontend_base}/login?error=oauth", status_code=302)

    handshake = await consume_handshake(state)
    if handshake is None or handshake.provider != provider:
        logger.info("oauth_state_rejected", extra={"provider": provider})
        return failure

    try:
        oauth_provider = get_oauth_provider(provider, settings)
        profile = await oauth_provider.exchange(
            code or "", build_redirect_uri(oauth_provider, settings),
        )
        user = await oauth_service.upsert_oauth_user(db, profile)
    except AppError as e:
        logger.info("oauth_login_failed", extra={"provider": provider, "code": e.code})
        return failure

    token = create_access_token(user, settings)
    if handshake.popup:
        return HTMLResponse(
            popup_response_html(token, handshake.redirect_path, settings.frontend_base),
        )
    return RedirectResponse(
        f"{settings.frontend_base}/oauth/callback"
        f"?redirect={quote(handshake.redirect_path, safe='')}#token={quote(token)}",
        status_code=302,
    )
