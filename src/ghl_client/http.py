import email.utils as eut
import math
import time
from collections.abc import Mapping
from typing import Any

import httpx
import pydantic

from .errors import HttpClientError, ValidationError

DEFAULT_BASE_URL = "https://services.leadconnectorhq.com"
DEFAULT_API_VERSION = "2021-07-28"
DEFAULT_TIMEOUT = 30000  # ms
# Used on a 429 when Retry-After is missing or unusable
DEFAULT_RETRY_AFTER = 1000  # ms


def _parse_retry_after(headers: Mapping[str, str], now: float) -> int:
    """Return the Retry-After delay in milliseconds (seconds or HTTP-date form)."""
    ra = None
    for k, v in headers.items():
        if k.lower() == "retry-after":
            ra = v
            break
    if ra is None:
        return DEFAULT_RETRY_AFTER
    delay = 0
    try:
        seconds = float(ra)
    except ValueError:
        try:
            ts = eut.parsedate_to_datetime(ra)
        except (TypeError, ValueError):
            ts = None
        if ts is not None:
            delay = max(0, int(math.ceil((ts.timestamp() - now) * 1000)))
    else:
        # inf and nan fall back to the default
        if math.isfinite(seconds):
            delay = max(0, int(seconds * 1000))
    return delay or DEFAULT_RETRY_AFTER


def _format_loc(loc: tuple) -> str:
    return "/" + "/".join(str(part) for part in loc)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class HttpClient:
    """Thin JSON layer over ``httpx.AsyncClient``.

    Turns HTTP failures into HttpClientError (flagging retryable ones) and
    optionally validates success bodies against a pydantic model.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.default_headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Version": api_version,
            **(headers or {}),
        }
        self._own_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        response_model: type[pydantic.BaseModel] | None = None,
        validate_response: bool = True,
    ) -> Any:
        """Send one request and return the parsed (and possibly validated) body.

        With a ``response_model`` and validation on, the return value is a model
        instance; otherwise the decoded JSON (or text) is returned as-is.
        """
        method = method.upper()
        kwargs: dict[str, Any] = {
            "headers": {**self.default_headers, **(headers or {})},
            "timeout": self.timeout / 1000,
        }
        params = self._build_query(query)
        if params:
            kwargs["params"] = params
        if body is not None and method != "GET":
            kwargs["json"] = body

        try:
            resp = await self._client.request(method, self._build_url(path), **kwargs)
        except httpx.TimeoutException as e:
            raise HttpClientError("Request timeout", should_retry=True) from e
        except httpx.TransportError as e:
            raise HttpClientError(str(e) or type(e).__name__, should_retry=True) from e

        data = self._parse_response(resp)
        if response_model is not None and validate_response:
            return self._validate(data, response_model)
        return data

    async def get(self, path: str, **kw) -> Any:
        return await self.request("GET", path, **kw)

    async def post(self, path: str, **kw) -> Any:
        return await self.request("POST", path, **kw)

    async def put(self, path: str, **kw) -> Any:
        return await self.request("PUT", path, **kw)

    async def patch(self, path: str, **kw) -> Any:
        return await self.request("PATCH", path, **kw)

    async def delete(self, path: str, **kw) -> Any:
        return await self.request("DELETE", path, **kw)

    # internal
    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _build_query(self, query: Mapping[str, Any] | None) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for key, value in (query or {}).items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                params[key] = [_query_value(v) for v in value]
            else:
                params[key] = _query_value(value)
        return params

    def _parse_response(self, resp: httpx.Response) -> Any:
        content_type = resp.headers.get("content-type", "")
        is_json = "application/json" in content_type

        if resp.is_success:
            if not resp.content:
                return None
            return resp.json() if is_json else resp.text

        try:
            error_data: Any = resp.json() if is_json else resp.text
        except ValueError:
            error_data = {"message": "Failed to parse error response"}

        message = None
        if isinstance(error_data, dict) and error_data.get("message"):
            message = str(error_data["message"])
        if not message:
            message = f"HTTP {resp.status_code}: {resp.reason_phrase}"

        status = resp.status_code
        is_auth_error = status in (401, 403)
        is_rate_limited = status == 429  # noqa: PLR2004
        retry_after = None
        if is_rate_limited:
            retry_after = _parse_retry_after(resp.headers, time.time())

        raise HttpClientError(
            message,
            status_code=status,
            response=error_data,
            should_retry=not is_auth_error and (status >= 500 or is_rate_limited),  # noqa: PLR2004
            retry_after=retry_after,
        )

    def _validate(self, data: Any, model: type[pydantic.BaseModel]) -> pydantic.BaseModel:
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as exc:
            errors = [
                {
                    "path": _format_loc(err.get("loc", ())),
                    "message": err.get("msg", ""),
                    "value": err.get("input"),
                }
                for err in exc.errors()
            ]
            raise ValidationError("Response validation failed", errors) from exc
