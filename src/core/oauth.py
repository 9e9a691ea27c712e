"""
OAuth2 provider variants for Google and GitHub.

Each provider builds its authorization URL and exchanges an authorization code
for an ExternalProfile. Providers are looked up by name in a fixed table; a
provider is only available when its client id and secret are configured.
"""
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

import httpx

from core.config import Settings
from services.exceptions import AuthError, NotFoundError

logger = logging.getLogger(__name__)

OAUTH_HTTP_TIMEOUT = 10.0


class OAuthProviderName(StrEnum):
    """Supported external identity providers."""

    GOOGLE = "google"
    GITHUB = "github"


@dataclass
class ExternalProfile:
    """Identity asserted by a provider after a successful code exchange."""

    provider: str
    external_id: str
    username: str | None = None
    display_name: str | None = None
    email: str | None = None


class OAuthExchangeError(AuthError):
    """Raised when the provider rejects the code or returns an unusable profile."""

    default_message = "OAuth login failed"


class OAuthProvider:
    """Authorization-code flow against a single provider."""

    name: OAuthProviderName
    authorize_endpoint: str
    token_endpoint: str
    scope: str

    def __init__(self, client_id: str, client_secret: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        """URL the browser is sent to for consent."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def exchange(self, code: str, redirect_uri: str) -> ExternalProfile:
        """
        Exchange an authorization code for the user's profile.

        Raises:
            OAuthExchangeError: On any transport, status or payload problem.
        """
        if not code:
            raise OAuthExchangeError("Missing authorization code")
        try:
            async with httpx.AsyncClient(timeout=OAUTH_HTTP_TIMEOUT) as client:
                access_token = await self._fetch_access_token(client, code, redirect_uri)
                return await self._fetch_profile(client, access_token)
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(
                "oauth_exchange_failed",
                extra={"provider": self.name.value, "error": type(e).__name__},
            )
            raise OAuthExchangeError() from e

    async def _fetch_access_token(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
    ) -> str:
        response = await client.post(
            self.token_endpoint,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()
        token = payload.get("access_token")
        if not token:
            # GitHub answers 200 with an "error" field for bad codes
            raise ValueError(payload.get("error") or "no access token")
        return token

    async def _fetch_profile(
        self,
        client: httpx.AsyncClient,
        access_token: str,
    ) -> ExternalProfile:
        raise NotImplementedError


class GoogleProvider(OAuthProvider):
    """Google OpenID Connect."""

    name = OAuthProviderName.GOOGLE
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://openidconnect.googleapis.com/v1/userinfo"
    scope = "openid email profile"

    async def _fetch_profile(
        self,
        client: httpx.AsyncClient,
        access_token: str,
    ) -> ExternalProfile:
        response = await client.get(
            self.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        response.raise_for_status()
        info = response.json()
        # Only trust addresses Google has verified
        email = info.get("email") if info.get("email_verified") else None
        return ExternalProfile(
            provider=self.name.value,
            external_id=str(info["sub"]),
            display_name=info.get("name"),
            email=email,
        )


class GitHubProvider(OAuthProvider):
    """GitHub OAuth apps."""

    name = OAuthProviderName.GITHUB
    authorize_endpoint = "https://github.com/login/oauth/authorize"
    token_endpoint = "https://github.com/login/oauth/access_token"
    api_base = "https://api.github.com"
    scope = "read:user user:email"

    async def _fetch_profile(
        self,
        client: httpx.AsyncClient,
        access_token: str,
    ) -> ExternalProfile:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }
        response = await client.get(f"{self.api_base}/user", headers=headers)
        response.raise_for_status()
        info = response.json()

        email = info.get("email")
        if not email:
            emails_response = await client.get(f"{self.api_base}/user/emails", headers=headers)
            if emails_response.is_success:
                email = primary_github_email(emails_response.json())

        return ExternalProfile(
            provider=self.name.value,
            external_id=str(info["id"]),
            username=info.get("login"),
            display_name=info.get("name"),
            email=email,
        )


def primary_github_email(emails: Any) -> str | None:
    """Pick the primary verified address from GitHub's /user/emails payload."""
    if not isinstance(emails, list):
        return None
    for entry in emails:
        if entry.get("primary") and entry.get("verified"):
            return entry.get("email")
    return None


def get_oauth_providers(settings: Settings) -> dict[OAuthProviderName, OAuthProvider]:
    """Build the lookup table of providers that have credentials configured."""
    credentials = {
        OAuthProviderName.GOOGLE: (
            GoogleProvider, settings.google_client_id, settings.google_client_secret,
        ),
        OAuthProviderName.GITHUB: (
            GitHubProvider, settings.github_client_id, settings.github_client_secret,
        ),
    }
    return {
        name: provider_cls(client_id, client_secret)
        for name, (provider_cls, client_id, client_secret) in credentials.items()
        if client_id and client_secret
    }


def get_oauth_provider(name: str, settings: Settings) -> OAuthProvider:
    """
    Resolve a provider by its path name.

    Raises:
        NotFoundError: If the name is unknown or the provider is not configured.
    """
    try:
        provider_name = OAuthProviderName(name)
    except ValueError:
        raise NotFoundError("Unknown OAuth provider") from None
    provider = get_oauth_providers(settings).get(provider_name)
    if provider is None:
        raise NotFoundError("OAuth provider not configured")
    return provider


def build_redirect_uri(provider: OAuthProvider, settings: Settings) -> str:
    """Callback URL registered with the provider."""
    return f"{settings.oauth_callback_url.rstrip('/')}/auth/{provider.name.value}/callback"
