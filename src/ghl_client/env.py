import os
from typing import Any

from .errors import ConfigurationError
from .types import ApiKeyAuth, AuthConfig, OAuthAuth

DEFAULT_PREFIX = "GHL_"


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs and an optional leading ``export``, ignoring
    comments and blank lines. Surrounding single/double quotes are stripped.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :]
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # a missing .env is the same as an empty one
        pass
    return values


def _env_map(env_path: str | None) -> dict[str, str]:
    # actual environment takes precedence over the .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def load_auth_from_env(env_path: str | None = None, prefix: str = DEFAULT_PREFIX) -> AuthConfig:
    """Build an ApiKeyAuth or OAuthAuth from ``<prefix>*`` variables.

    ``<prefix>API_KEY`` wins if set. Otherwise ``<prefix>ACCESS_TOKEN`` is
    required and ``REFRESH_TOKEN``, ``TOKEN_EXPIRES_AT`` (epoch ms),
    ``CLIENT_ID``, ``CLIENT_SECRET`` and ``REDIRECT_URI`` are picked up when present.
    """
    env = _env_map(env_path)

    def get(name: str) -> str | None:
        return env.get(f"{prefix}{name}") or None

    api_key = get("API_KEY")
    if api_key:
        return ApiKeyAuth(api_key=api_key)

    access_token = get("ACCESS_TOKEN")
    if not access_token:
        raise ConfigurationError(
            f"No credentials found: set {prefix}API_KEY or {prefix}ACCESS_TOKEN"
        )
    expires_at = get("TOKEN_EXPIRES_AT")
    try:
        expires_at_ms = int(expires_at) if expires_at else None
    except ValueError as e:
        raise ConfigurationError(
            f"{prefix}TOKEN_EXPIRES_AT must be epoch milliseconds, got {expires_at!r}"
        ) from e
    return OAuthAuth(
        access_token=access_token,
        refresh_token=get("REFRESH_TOKEN"),
        expires_at=expires_at_ms,
        client_id=get("CLIENT_ID"),
        client_secret=get("CLIENT_SECRET"),
        redirect_uri=get("REDIRECT_URI"),
    )


def load_client_settings_from_env(
    env_path: str | None = None, prefix: str = DEFAULT_PREFIX
) -> dict[str, Any]:
    """Return GHLClient keyword arguments found in the environment.

    Keys: location_id, base_url, api_version, timeout (ms). Unset variables are
    left out so the client defaults apply.
    """
    env = _env_map(env_path)
    settings: dict[str, Any] = {}
    for var, kwarg in (
        ("LOCATION_ID", "location_id"),
        ("BASE_URL", "base_url"),
        ("API_VERSION", "api_version"),
    ):
        value = env.get(f"{prefix}{var}")
        if value:
            settings[kwarg] = value
    timeout = env.get(f"{prefix}TIMEOUT")
    if timeout:
        try:
            settings["timeout"] = float(timeout)
        except ValueError as e:
            raise ConfigurationError(f"{prefix}TIMEOUT must be a number, got {timeout!r}") from e
    return settings
