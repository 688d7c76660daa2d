import logging
import time
from urllib.parse import urlencode

import httpx
import pydantic

from .errors import RefreshError
from .models import TokenResponse
from .types import OAuthConfig

AUTH_BASE_URL = "https://marketplace.gohighlevel.com/oauth"
TOKEN_BASE_URL = "https://services.leadconnectorhq.com/oauth"
# Treat tokens as expired this long before they actually are
DEFAULT_EXPIRY_BUFFER_SECONDS = 300


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_token_expired(
    expires_at: int | None,
    buffer_seconds: float = DEFAULT_EXPIRY_BUFFER_SECONDS,
    now: int | None = None,
) -> bool:
    """True once ``now`` is within ``buffer_seconds`` of ``expires_at`` (epoch ms).

    A missing expiry is never considered expired.
    """
    if expires_at is None:
        return False
    current = _now_ms() if now is None else now
    return current >= expires_at - buffer_seconds * 1000


def calculate_expires_at(expires_in: float, now: int | None = None) -> int:
    """Epoch ms at which a token issued ``expires_in`` seconds from now expires."""
    current = _now_ms() if now is None else now
    return int(current + expires_in * 1000)


class OAuthClient:
    """OAuth 2.0 authorization-code flow and token refresh for GoHighLevel apps."""

    def __init__(self, config: OAuthConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self.auth_base_url = AUTH_BASE_URL
        self.token_base_url = TOKEN_BASE_URL
        self._own_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient()
        self._logger = logging.getLogger("ghl_client")

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    def get_authorization_url(
        self, state: str | None = None, scopes: list[str] | None = None
    ) -> str:
        """URL to send the user to so they can pick a location and grant access."""
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
        }
        use_scopes = list(scopes) if scopes else list(self.config.scopes)
        if use_scopes:
            params["scope"] = " ".join(use_scopes)
        if state:
            params["state"] = state
        return f"{self.auth_base_url}/chooselocation?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str) -> TokenResponse:
        return await self._token_request(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            },
            "Token exchange failed",
        )

    async def refresh_token(self, refresh_token: str) -> TokenResponse:
        return await self._token_request(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            "Token refresh failed",
        )

    def is_token_expired(
        self, expires_at: int | None, buffer_seconds: float = DEFAULT_EXPIRY_BUFFER_SECONDS
    ) -> bool:
        return is_token_expired(expires_at, buffer_seconds)

    def calculate_expires_at(self, expires_in: float) -> int:
        return calculate_expires_at(expires_in)

    async def _token_request(self, form: dict[str, str], failure: str) -> TokenResponse:
        url = f"{self.token_base_url}/token"
        self._logger.debug(f"token request grant_type={form['grant_type']}")
        try:
            resp = await self._client.post(
                url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise RefreshError(f"{failure}: {e}") from e
        if not resp.is_success:
            raise RefreshError(f"{failure}: {resp.text}", resp.status_code, resp.text)
        try:
            return TokenResponse.model_validate(resp.json())
        except (ValueError, pydantic.ValidationError) as e:
            raise RefreshError(f"{failure}: malformed token response", resp.status_code) from e


def create_oauth_client(config: OAuthConfig, http_client: httpx.AsyncClient | None = None):
    return OAuthClient(config, http_client=http_client)
