# tests/test_oauth.py
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from reviewdesk.errors import AuthenticationError, RefreshRejectedError, RefreshUnavailableError, ValidationError
from reviewdesk.google.oauth import GOOGLE_TOKEN_ENDPOINT, GoogleOAuthClient
from reviewdesk.google.oauth_state import OAuthStateStore
from reviewdesk.utils.common import utcnow


def _client(handler) -> GoogleOAuthClient:
    return GoogleOAuthClient(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://localhost/cb",
        scopes=["scope-a", "scope-b"],
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_authorization_url_asks_for_offline_access():
    client = _client(lambda request: httpx.Response(500))
    url = urlparse(client.authorization_url(state="user-42"))
    query = parse_qs(url.query)

    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["state"] == ["user-42"]
    assert query["scope"] == ["scope-a scope-b"]
    assert query["redirect_uri"] == ["http://localhost/cb"]


async def test_refresh_posts_form_and_parses_grant():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"access_token": "A2", "expires_in": 1800, "token_type": "Bearer"})

    grant = await _client(handler).refresh("R1")

    assert seen["url"] == GOOGLE_TOKEN_ENDPOINT
    assert seen["form"]["grant_type"] == ["refresh_token"]
    assert seen["form"]["refresh_token"] == ["R1"]
    assert grant.access_token == "A2"
    assert grant.expires_in == 1800
    assert grant.refresh_token is None


async def test_exchange_code_returns_refresh_token():
    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["the-code"]
        return httpx.Response(200, json={"access_token": "A1", "expires_in": 3600, "refresh_token": "R1"})

    grant = await _client(handler).exchange_code("the-code")
    assert grant.refresh_token == "R1"


async def test_invalid_grant_is_a_rejection():
    client = _client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

    with pytest.raises(RefreshRejectedError) as exc_info:
        await client.refresh("revoked")
    assert isinstance(exc_info.value, AuthenticationError)
    assert exc_info.value.status_code == 400


async def test_server_error_is_transient():
    client = _client(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(RefreshUnavailableError):
        await client.refresh("R1")


async def test_network_failure_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RefreshUnavailableError):
        await _client(handler).refresh("R1")


async def test_non_object_error_body_is_still_classified():
    client = _client(lambda request: httpx.Response(400, json=["invalid_grant"]))

    with pytest.raises(RefreshRejectedError):
        await client.refresh("R1")


# ─── state store ──────────────────────────────────────────────────────────────
def test_state_resolves_to_the_issuing_user_once():
    states = OAuthStateStore()
    state = states.issue("owner")

    assert states.consume(state) == "owner"
    with pytest.raises(ValidationError):
        states.consume(state)


def test_expired_state_is_rejected_and_purged():
    now = [utcnow()]
    states = OAuthStateStore(ttl=timedelta(minutes=10), clock=lambda: now[0])
    state = states.issue("owner")

    now[0] += timedelta(minutes=11)
    with pytest.raises(ValidationError):
        states.consume(state)
    assert len(states) == 0
