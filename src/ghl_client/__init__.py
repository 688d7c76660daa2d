from .audit import (
    AuditEvent,
    AuditLogger,
    BufferAuditLogger,
    FileAuditLogger,
    LoggingAuditLogger,
    NoopAuditLogger,
)
from .cache import PIPELINE_CACHE_TTL, PipelineCache
from .client import GHLClient
from .contacts import ContactsResource
from .env import load_auth_from_env, load_client_settings_from_env
from .errors import (
    ConfigurationError,
    GHLError,
    HttpClientError,
    RefreshError,
    TransportError,
    ValidationError,
)
from .http import HttpClient
from .oauth import OAuthClient, calculate_expires_at, create_oauth_client, is_token_expired
from .opportunities import OpportunitiesResource
from .retry import calculate_delay, create_retry_wrapper, default_should_retry, with_retry
from .types import (
    ApiKeyAuth,
    AuthConfig,
    OAuthAuth,
    OAuthConfig,
    RetryConfig,
    TokenSet,
    is_api_key_auth,
    is_oauth_auth,
)
from .users import UsersResource

__all__ = [
    "GHLClient",
    "ApiKeyAuth",
    "OAuthAuth",
    "AuthConfig",
    "OAuthConfig",
    "RetryConfig",
    "TokenSet",
    "is_api_key_auth",
    "is_oauth_auth",
    "OAuthClient",
    "create_oauth_client",
    "is_token_expired",
    "calculate_expires_at",
    "HttpClient",
    "calculate_delay",
    "default_should_retry",
    "with_retry",
    "create_retry_wrapper",
    "PipelineCache",
    "PIPELINE_CACHE_TTL",
    "ContactsResource",
    "OpportunitiesResource",
    "UsersResource",
    "AuditEvent",
    "AuditLogger",
    "NoopAuditLogger",
    "LoggingAuditLogger",
    "FileAuditLogger",
    "BufferAuditLogger",
    "GHLError",
    "HttpClientError",
    "TransportError",
    "ValidationError",
    "ConfigurationError",
    "RefreshError",
    "load_auth_from_env",
    "load_client_settings_from_env",
]
