import asyncio
import time
from unittest.mock import AsyncMock

import httpx
import pytest

from ghl_client import (
    ApiKeyAuth,
    AuditEvent,
    ConfigurationError,
    GHLClient,
    HttpClientError,
    OAuthAuth,
    OAuthClient,
    RefreshError,
    RetryConfig,
    TokenSet,
)
from ghl_client.models import TokenResponse

CONTACT = {"contact": {"id": "c1", "locationId": "loc-1", "firstName": "Ann"}}


def _now_ms() -> int:
    return int(time.time() * 1000)


class FakeApi:
    """MockTransport handler that serves the token endpoint and scripted API replies."""

    def __init__(self, api_responses=None, token_status=200, token_delay=0.0):
        self.api_responses = list(api_responses or [])
        self.token_status = token_status
        self.token_delay = token_delay
        self.token_calls = 0
        self.api_requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_calls += 1
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            if self.token_status != 200:  # noqa: PLR2004
                return httpx.Response(self.token_status, text="invalid_grant")
            return httpx.Response(
                200,
                json={
                    "access_token": f"new-{self.token_calls}",
                    "refresh_token": f"refresh-{self.token_calls}",
                    "expires_in": 86400,
                },
            )
        self.api_requests.append(request)
        if len(self.api_responses) > 1:
            status, body = self.api_responses.pop(0)
        else:
            status, body = self.api_responses[0] if self.api_responses else (200, CONTACT)
        return httpx.Response(status, json=body)

    def client(self, auth, **kw) -> GHLClient:
        transport = httpx.MockTransport(self)
        return GHLClient(auth, http_client=httpx.AsyncClient(transport=transport), **kw)


def _oauth(expires_at=None, **kw) -> OAuthAuth:
    return OAuthAuth(
        access_token=kw.pop("access_token", "old"),
        refresh_token=kw.pop("refresh_token", "refresh-0"),
        expires_at=expires_at,
        client_id="cid",
        client_secret="secret",
        **kw,
    )


@pytest.mark.asyncio
async def test_api_key_never_refreshes():
    api = FakeApi()
    client = api.client(ApiKeyAuth("key-1"))
    await client.ensure_valid_token()
    contact = await client.contacts.get("c1")
    assert contact.id == "c1"
    assert api.token_calls == 0
    assert api.api_requests[0].headers["Authorization"] == "Bearer key-1"


@pytest.mark.asyncio
async def test_valid_token_is_not_refreshed():
    api = FakeApi()
    client = api.client(_oauth(expires_at=_now_ms() + 3_600_000))
    await client.ensure_valid_token()
    assert api.token_calls == 0
    assert client.auth.access_token == "old"


@pytest.mark.asyncio
async def test_expiring_token_refreshed_before_call():
    api = FakeApi()
    # inside the five minute buffer
    client = api.client(_oauth(expires_at=_now_ms() + 60_000))
    await client.contacts.get("c1")
    assert api.token_calls == 1
    assert api.api_requests[0].headers["Authorization"] == "Bearer new-1"
    assert client.auth.refresh_token == "refresh-1"
    assert client.auth.expires_at > _now_ms() + 86_000_000


@pytest.mark.asyncio
async def test_concurrent_refresh_is_single_flight():
    api = FakeApi(token_delay=0.02)
    client = api.client(_oauth(expires_at=_now_ms() - 1000))
    await asyncio.gather(*(client.ensure_valid_token() for _ in range(5)))
    assert api.token_calls == 1
    assert client.auth.access_token == "new-1"


@pytest.mark.asyncio
async def test_concurrent_requests_share_refreshed_token():
    api = FakeApi(token_delay=0.02)
    client = api.client(_oauth(expires_at=_now_ms() - 1000))
    await asyncio.gather(client.contacts.get("c1"), client.contacts.get("c1"))
    assert api.token_calls == 1
    assert [r.headers["Authorization"] for r in api.api_requests] == ["Bearer new-1"] * 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_credentials_and_allows_retry():
    api = FakeApi(token_status=400)
    auth = _oauth(expires_at=_now_ms() - 1000)
    client = api.client(auth)

    with pytest.raises(RefreshError):
        await client.ensure_valid_token()
    assert client.auth is auth
    assert client._refresh_task is None

    api.token_status = 200
    await client.ensure_valid_token()
    assert api.token_calls == 2  # noqa: PLR2004
    assert client.auth.access_token == "new-2"


@pytest.mark.asyncio
async def test_concurrent_waiters_all_see_refresh_failure():
    api = FakeApi(token_status=500, token_delay=0.01)
    client = api.client(_oauth(expires_at=_now_ms() - 1000))
    results = await asyncio.gather(
        client.ensure_valid_token(), client.ensure_valid_token(), return_exceptions=True
    )
    assert all(isinstance(r, RefreshError) for r in results)
    assert api.token_calls == 1


@pytest.mark.asyncio
async def test_401_refreshes_once_and_retries_once():
    api = FakeApi(api_responses=[(401, {"message": "expired"}), (200, CONTACT)])
    client = api.client(_oauth(expires_at=_now_ms() + 3_600_000))
    contact = await client.contacts.get("c1")
    assert contact.first_name == "Ann"
    assert api.token_calls == 1
    auths = [r.headers["Authorization"] for r in api.api_requests]
    assert auths == ["Bearer old", "Bearer new-1"]


@pytest.mark.asyncio
async def test_second_401_surfaces_without_another_refresh():
    api = FakeApi(api_responses=[(401, {"message": "expired"})])
    client = api.client(_oauth(expires_at=_now_ms() + 3_600_000))
    with pytest.raises(HttpClientError) as exc:
        await client.contacts.get("c1")
    assert exc.value.status_code == 401  # noqa: PLR2004
    assert api.token_calls == 1
    assert len(api.api_requests) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_401_without_refresh_token_propagates():
    api = FakeApi(api_responses=[(401, {"message": "expired"})])
    client = api.client(_oauth(refresh_token=None))
    with pytest.raises(HttpClientError):
        await client.contacts.get("c1")
    assert api.token_calls == 0
    assert len(api.api_requests) == 1


@pytest.mark.asyncio
async def test_401_with_api_key_propagates():
    api = FakeApi(api_responses=[(401, {"message": "bad key"})])
    client = api.client(ApiKeyAuth("k"), retry_config=RetryConfig(initial_delay=1))
    with pytest.raises(HttpClientError):
        await client.contacts.get("c1")
    assert len(api.api_requests) == 1


@pytest.mark.asyncio
async def test_retry_policy_applies_to_5xx():
    api = FakeApi(api_responses=[(503, {}), (502, {}), (200, CONTACT)])
    client = api.client(ApiKeyAuth("k"), max_retries=3, initial_delay=1, max_delay=2)
    contact = await client.contacts.get("c1")
    assert contact.id == "c1"
    assert len(api.api_requests) == 3  # noqa: PLR2004


@pytest.mark.asyncio
async def test_no_retry_config_means_single_attempt():
    api = FakeApi(api_responses=[(503, {}), (200, CONTACT)])
    client = api.client(ApiKeyAuth("k"))
    with pytest.raises(HttpClientError):
        await client.contacts.get("c1")
    assert len(api.api_requests) == 1


@pytest.mark.asyncio
async def test_on_token_refresh_callback_sync_and_async():
    seen = []

    async def _async_cb(tokens: TokenSet):
        seen.append(("async", tokens))

    api = FakeApi()
    client = api.client(
        _oauth(expires_at=_now_ms() - 1, on_token_refresh=lambda t: seen.append(("sync", t)))
    )
    await client.ensure_valid_token()
    client.update_auth(_oauth(expires_at=_now_ms() - 1, on_token_refresh=_async_cb))
    await client.ensure_valid_token()

    assert [kind for kind, _ in seen] == ["sync", "async"]
    first = seen[0][1]
    assert first.access_token == "new-1"
    assert first.refresh_token == "refresh-1"
    assert first.expires_at > _now_ms()
    assert client.auth.access_token == "new-2"


@pytest.mark.asyncio
async def test_refresh_keeps_old_refresh_token_when_none_returned():
    def handler(request):
        return httpx.Response(200, json={"access_token": "a2", "expires_in": 60 * 60})

    client = GHLClient(
        _oauth(expires_at=_now_ms() - 1),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    await client.ensure_valid_token()
    assert client.auth.access_token == "a2"
    assert client.auth.refresh_token == "refresh-0"


@pytest.mark.asyncio
async def test_refresh_without_oauth_client_is_configuration_error():
    api = FakeApi()
    auth = OAuthAuth(access_token="t", refresh_token="r", expires_at=_now_ms() - 1)
    client = api.client(auth)
    assert client.oauth_client is None
    with pytest.raises(ConfigurationError):
        await client.ensure_valid_token()


@pytest.mark.asyncio
async def test_update_auth_applies_to_next_request():
    api = FakeApi()
    client = api.client(ApiKeyAuth("first"))
    await client.contacts.get("c1")
    client.update_auth(ApiKeyAuth("second"))
    await client.contacts.get("c1")
    auths = [r.headers["Authorization"] for r in api.api_requests]
    assert auths == ["Bearer first", "Bearer second"]
    assert client.build_auth_headers() == {"Authorization": "Bearer second"}


def test_invalid_auth_rejected():
    with pytest.raises(ConfigurationError):
        GHLClient({"api_key": "k"})


@pytest.mark.asyncio
async def test_require_location_id():
    client = FakeApi().client(ApiKeyAuth("k"), location_id="loc-default")
    assert client.require_location_id() == "loc-default"
    assert client.require_location_id("loc-2") == "loc-2"

    bare = FakeApi().client(ApiKeyAuth("k"))
    with pytest.raises(ConfigurationError):
        bare.require_location_id()
    with pytest.raises(ConfigurationError):
        bare.require_location_id("")


@pytest.mark.asyncio
async def test_audit_events_for_mutations_and_refresh():
    events: list[AuditEvent] = []

    class Collect:
        def log(self, event):
            events.append(event)

    api = FakeApi()
    client = api.client(
        _oauth(expires_at=_now_ms() - 1), audit_logger=Collect(), actor="user-7"
    )
    await client.contacts.create({"locationId": "loc-1", "firstName": "Ann"})

    assert [(e.operation, e.resource_type) for e in events] == [
        ("token_refresh", "auth_token"),
        ("create", "contact"),
    ]
    created = events[1]
    assert created.resource_id == "c1"
    assert created.location_id == "loc-1"
    assert created.actor == "user-7"
    assert created.success is True


@pytest.mark.asyncio
async def test_failed_mutation_is_audited_and_raised():
    events = []

    async def _log(event):
        events.append(event)

    class Collect:
        log = staticmethod(_log)

    api = FakeApi(api_responses=[(400, {"message": "bad"})])
    client = api.client(ApiKeyAuth("k"), audit_logger=Collect())
    with pytest.raises(HttpClientError):
        await client.contacts.delete("c9")
    assert len(events) == 1
    assert events[0].success is False
    assert events[0].resource_id == "c9"
    assert events[0].error == "bad"


@pytest.mark.asyncio
async def test_broken_audit_logger_does_not_break_calls():
    class Broken:
        def log(self, event):
            raise RuntimeError("disk full")

    api = FakeApi(api_responses=[(200, {})])
    client = api.client(ApiKeyAuth("k"), audit_logger=Broken())
    await client.contacts.delete("c1")


@pytest.mark.asyncio
async def test_from_env(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "TESTGHL_ACCESS_TOKEN=tok\n"
        "TESTGHL_REFRESH_TOKEN=ref\n"
        "TESTGHL_CLIENT_ID=cid\n"
        "TESTGHL_CLIENT_SECRET=sec\n"
        "TESTGHL_LOCATION_ID=loc-file\n"
    )
    monkeypatch.setenv("TESTGHL_LOCATION_ID", "loc-env")

    client = GHLClient.from_env(env_path=str(env_file), prefix="TESTGHL_", timeout=5000)
    try:
        assert isinstance(client.auth, OAuthAuth)
        assert client.auth.access_token == "tok"
        assert client.location_id == "loc-env"
        assert client.http.timeout == 5000  # noqa: PLR2004
        assert client.oauth_client is not None
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_injected_oauth_client_is_used_and_kept():
    oauth = AsyncMock(spec=OAuthClient)
    oauth.refresh_token.return_value = TokenResponse(access_token="injected", expires_in=3600)
    api = FakeApi()
    client = api.client(
        OAuthAuth(access_token="t", refresh_token="r", expires_at=_now_ms() - 1),
        oauth_client=oauth,
    )
    await client.ensure_valid_token()
    oauth.refresh_token.assert_awaited_once_with("r")
    assert client.auth.access_token == "injected"
    assert api.token_calls == 0

    client.update_auth(_oauth(expires_at=_now_ms() - 1))
    assert client.oauth_client is oauth
