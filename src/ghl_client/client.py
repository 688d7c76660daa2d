import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from typing import Any, TypeVar, Union

import httpx
import pydantic

from . import retry as _retry
from .audit import AuditEvent, AuditLogger, NoopAuditLogger
from .contacts import ContactsResource
from .env import DEFAULT_PREFIX, load_auth_from_env, load_client_settings_from_env
from .errors import ConfigurationError
from .http import DEFAULT_API_VERSION, DEFAULT_BASE_URL, DEFAULT_TIMEOUT, HttpClient
from .oauth import (
    DEFAULT_EXPIRY_BUFFER_SECONDS,
    OAuthClient,
    calculate_expires_at,
    is_token_expired,
)
from .opportunities import OpportunitiesResource
from .types import ApiKeyAuth, AuthConfig, OAuthAuth, OAuthConfig, RetryConfig, TokenSet
from .users import UsersResource

T = TypeVar("T")

# RetryConfig fields that may be passed straight to GHLClient(...)
_RETRY_KWARGS = (
    "max_retries",
    "initial_delay",
    "max_delay",
    "exponential_base",
    "should_retry",
    "on_retry",
)


class GHLClient:
    """Async client for the GoHighLevel API.

    Every resource call goes through ``with_retry``: the OAuth token is
    refreshed first if it is about to expire, the call runs under the retry
    policy (when one is configured), and a 401 triggers one forced refresh
    followed by one more attempt.

    Other keywords for kwargs (used to build a RetryConfig when
    ``retry_config`` is not given):
    - max_retries: int
    - initial_delay: float (ms)
    - max_delay: float (ms)
    - exponential_base: float
    - should_retry: callable(error, attempt) -> bool
    - on_retry: callable(error, attempt, delay)
    """

    def __init__(
        self,
        auth: AuthConfig,
        *,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
        location_id: str | None = None,
        logger: logging.Logger | None = None,
        log_level: Union[int, None] = None,
        debug: bool = False,
        audit_logger: AuditLogger | None = None,
        actor: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        oauth_client: OAuthClient | None = None,
        **kwargs,
    ):
        unknown = set(kwargs) - set(_RETRY_KWARGS)
        if unknown:
            raise TypeError(f"Unexpected keyword arguments: {', '.join(sorted(unknown))}")
        if not isinstance(auth, (ApiKeyAuth, OAuthAuth)):
            raise ConfigurationError("auth must be an ApiKeyAuth or OAuthAuth instance")

        self._auth: AuthConfig = auth
        # Prefer the config object, then individual retry kwargs; None disables retries
        if retry_config is None and kwargs:
            retry_config = RetryConfig(**kwargs)
        self.retry_config = retry_config
        self.location_id = location_id
        self.actor = actor
        self.base_url = base_url

        self._logger = logger or logging.getLogger("ghl_client")
        if log_level is None and debug:
            log_level = logging.DEBUG
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)

        self._audit_logger: AuditLogger = audit_logger or NoopAuditLogger()
        # one connection pool shared by API calls and token exchanges
        self._own_http_client = http_client is None
        self._http_client = http_client if http_client is not None else httpx.AsyncClient()
        self._own_oauth_client = False
        self._oauth_client = oauth_client
        if oauth_client is None:
            self._oauth_client = self._make_oauth_client(auth)
        self._refresh_task: asyncio.Task | None = None

        self.http = HttpClient(
            base_url=base_url,
            api_version=api_version,
            timeout=timeout,
            client=self._http_client,
        )

        self.contacts = ContactsResource(self)
        self.opportunities = OpportunitiesResource(self)
        self.users = UsersResource(self)

        self._logger.info(
            f"GHLClient initialized auth={auth.type} base_url={base_url} "
            f"location={location_id}"
        )

    # ---------- construction helpers ----------

    @classmethod
    def from_env(
        cls, env_path: str | None = None, prefix: str = DEFAULT_PREFIX, **kwargs
    ) -> "GHLClient":
        """Build a client from ``GHL_*`` environment variables (and an optional .env file).

        Explicit keyword arguments override values found in the environment.
        """
        auth = kwargs.pop("auth", None) or load_auth_from_env(env_path=env_path, prefix=prefix)
        settings = load_client_settings_from_env(env_path=env_path, prefix=prefix)
        settings.update(kwargs)
        return cls(auth, **settings)

    def _make_oauth_client(self, auth: AuthConfig) -> OAuthClient | None:
        if not isinstance(auth, OAuthAuth) or not (auth.client_id and auth.client_secret):
            return None
        self._own_oauth_client = True
        return OAuthClient(
            OAuthConfig(
                client_id=auth.client_id,
                client_secret=auth.client_secret,
                redirect_uri=auth.redirect_uri or "",
            ),
            http_client=self._http_client,
        )

    async def aclose(self) -> None:
        if self._own_http_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    # ---------- credentials ----------

    @property
    def auth(self) -> AuthConfig:
        return self._auth

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def oauth_client(self) -> OAuthClient | None:
        return self._oauth_client

    def update_auth(self, auth: AuthConfig) -> None:
        """Replace the active credential. Headers are built per request, so this applies at once."""
        if not isinstance(auth, (ApiKeyAuth, OAuthAuth)):
            raise ConfigurationError("auth must be an ApiKeyAuth or OAuthAuth instance")
        # an injected OAuth client is kept as-is; ours follows the client credentials
        if self._own_oauth_client or self._oauth_client is None:
            new_oauth = self._make_oauth_client(auth)
            if new_oauth is not None:
                self._oauth_client = new_oauth
        self._auth = auth
        self._logger.debug(f"auth updated type={auth.type}")

    def get_access_token(self) -> str:
        auth = self._auth
        if isinstance(auth, ApiKeyAuth):
            return auth.api_key
        if isinstance(auth, OAuthAuth):
            return auth.access_token
        raise ConfigurationError("Invalid auth configuration")

    def build_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.get_access_token()}"}

    def is_token_expired(self) -> bool:
        auth = self._auth
        if not isinstance(auth, OAuthAuth):
            return False
        return is_token_expired(auth.expires_at, DEFAULT_EXPIRY_BUFFER_SECONDS)

    async def ensure_valid_token(self) -> None:
        """Refresh the OAuth token if it is expired (or about to be).

        Concurrent callers share a single in-flight refresh. No-op for API keys.
        """
        if not isinstance(self._auth, OAuthAuth):
            return
        if not self.is_token_expired():
            return
        await self._refresh_once()

    async def _refresh_once(self) -> None:
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh_token())
            self._refresh_task = task
            task.add_done_callback(self._clear_refresh_task)
        # shield: a cancelled waiter must not cancel the refresh other callers await
        await asyncio.shield(task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # waiters re-raise it; mark it retrieved in case all of them went away
            task.exception()

    def _can_refresh(self) -> bool:
        auth = self._auth
        return (
            isinstance(auth, OAuthAuth)
            and self._oauth_client is not None
            and bool(auth.refresh_token)
        )

    async def _refresh_token(self) -> None:
        auth = self._auth
        if not isinstance(auth, OAuthAuth):
            raise ConfigurationError("Cannot refresh token: not using OAuth authentication")
        if self._oauth_client is None:
            raise ConfigurationError(
                "Cannot refresh token: OAuth client not configured "
                "(client_id and client_secret are required)"
            )
        if not auth.refresh_token:
            raise ConfigurationError("Cannot refresh token: no refresh token available")

        self._logger.debug("refreshing OAuth token")
        try:
            tokens = await self._oauth_client.refresh_token(auth.refresh_token)
        except Exception as e:
            self._logger.error(f"failed to refresh OAuth token: {e}")
            await self.audit("token_refresh", "auth_token", success=False, error=str(e))
            raise

        new_auth = replace(
            auth,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or auth.refresh_token,
            expires_at=calculate_expires_at(tokens.expires_in),
        )
        self._auth = new_auth
        self._logger.info("OAuth token refreshed")
        await self.audit("token_refresh", "auth_token")

        if new_auth.on_token_refresh is not None:
            result = new_auth.on_token_refresh(
                TokenSet(
                    access_token=new_auth.access_token,
                    refresh_token=new_auth.refresh_token,
                    expires_at=new_auth.expires_at,
                )
            )
            if inspect.isawaitable(result):
                await result

    # ---------- dispatch ----------

    async def with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` with token refresh, the retry policy and one retry after a 401."""
        await self.ensure_valid_token()
        try:
            return await self._dispatch(fn)
        except Exception as error:
            status = getattr(error, "status_code", None)
            if status != 401 or not self._can_refresh():  # noqa: PLR2004
                raise
            self._logger.debug("received 401, refreshing token and retrying once")

        try:
            await self._refresh_once()
            return await self._dispatch(fn)
        except Exception as e:
            self._logger.error(f"token refresh and retry failed: {e}")
            raise

    async def _dispatch(self, fn: Callable[[], Awaitable[T]]) -> T:
        if self.retry_config is not None:
            return await _retry.with_retry(fn, self.retry_config)
        return await fn()

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        response_model: type[pydantic.BaseModel] | None = None,
        validate_response: bool = True,
    ) -> Any:
        """Authenticated request through ``with_retry``.

        Auth headers are rebuilt on every attempt so a retry after a refresh
        carries the new token.
        """

        async def _call():
            return await self.http.request(
                method,
                path,
                query=query,
                body=body,
                headers=self.build_auth_headers(),
                response_model=response_model,
                validate_response=validate_response,
            )

        return await self.with_retry(_call)

    # ---------- misc ----------

    def require_location_id(self, location_id: str | None = None) -> str:
        loc = location_id if location_id is not None else self.location_id
        if not loc:
            raise ConfigurationError(
                "Location ID is required. Either set it in the client config "
                "or pass it as a parameter."
            )
        return loc

    async def audit(self, operation: str, resource_type: str, **fields) -> None:
        """Record an audit event. Failures of the audit logger are logged, never raised."""
        fields.setdefault("actor", self.actor)
        try:
            event = AuditEvent(operation=operation, resource_type=resource_type, **fields)
            result = self._audit_logger.log(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._logger.error(f"failed to log audit event {operation} {resource_type}: {e}")

