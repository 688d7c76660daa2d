from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, Union

# Durations are milliseconds, timestamps are epoch milliseconds.


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    initial_delay: float = 1000
    max_delay: float = 10000
    exponential_base: float = 2
    # should_retry(error, attempt) -> bool; None means retry.default_should_retry
    should_retry: Callable[[BaseException, int], bool] | None = None
    # on_retry(error, attempt, delay); must not raise
    on_retry: Callable[[BaseException, int, float], None] | None = None


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    refresh_token: str
    expires_at: int


TokenRefreshCallback = Callable[[TokenSet], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ApiKeyAuth:
    api_key: str
    type: Literal["api-key"] = "api-key"


@dataclass(frozen=True)
class OAuthAuth:
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    on_token_refresh: TokenRefreshCallback | None = None
    type: Literal["oauth"] = "oauth"


AuthConfig = Union[ApiKeyAuth, OAuthAuth]


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str
    client_secret: str
    redirect_uri: str = ""
    scopes: tuple[str, ...] = ()


def is_api_key_auth(auth: Any) -> bool:
    return isinstance(auth, ApiKeyAuth)


def is_oauth_auth(auth: Any) -> bool:
    return isinstance(auth, OAuthAuth)
