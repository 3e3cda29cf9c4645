# tests/test_routes.py
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from reviewdesk.google.mock import MockBusinessClient
from reviewdesk.google.oauth_state import OAuthStateStore
from reviewdesk.models import TokenGrant
from reviewdesk.ratelimit import DEFAULT_POLICY, RateLimiter

OWNER = {"X-User-Id": "owner"}


@pytest.fixture
async def client(session_factory, token_manager, fake_oauth):
    from main import app

    app.state.session_factory = session_factory
    app.state.oauth_client = fake_oauth
    app.state.token_manager = token_manager
    app.state.business_client = MockBusinessClient()
    app.state.rate_limiter = RateLimiter()
    app.state.oauth_states = OAuthStateStore()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
async def authorized(store_token):
    await store_token("owner", expires_in=timedelta(hours=1))


async def test_healthz(client):
    resp = await client.get("/healthz")
    assert resp.json() == {"ok": True}


async def test_missing_user_header_is_a_validation_error(client):
    resp = await client.post("/locations/sync")
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


async def _start_state(client, headers=OWNER) -> str:
    resp = await client.get("/google/oauth/start", headers=headers)
    assert resp.status_code == 307
    return parse_qs(urlparse(resp.headers["location"]).query)["state"][0]


async def test_oauth_start_issues_an_opaque_state(client):
    first = await _start_state(client)
    second = await _start_state(client)

    assert first != second
    assert "owner" not in first


async def test_oauth_callback_stores_credential_for_the_starting_user(client, fake_oauth, token_manager):
    state = await _start_state(client)

    resp = await client.get("/google/oauth/callback", params={"code": "abc", "state": state})

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "user_id": "owner"}
    assert fake_oauth.exchanged == ["abc"]
    assert await token_manager.get_valid_access_token("owner") == fake_oauth.grant.access_token


async def test_oauth_callback_with_user_id_as_state_cannot_overwrite_credential(
    client, fake_oauth, token_manager, store_token
):
    await store_token("owner", access_token="OWNER-ACCESS")
    fake_oauth.grant = TokenGrant(access_token="OTHER-ACCESS", expires_in=3600, refresh_token="OTHER-REFRESH")

    resp = await client.get("/google/oauth/callback", params={"code": "other-code", "state": "owner"})

    assert resp.status_code == 400
    assert fake_oauth.exchanged == []
    assert await token_manager.get_valid_access_token("owner") == "OWNER-ACCESS"


async def test_oauth_state_is_single_use(client, fake_oauth):
    state = await _start_state(client)
    await client.get("/google/oauth/callback", params={"code": "abc", "state": state})

    resp = await client.get("/google/oauth/callback", params={"code": "again", "state": state})

    assert resp.status_code == 400
    assert fake_oauth.exchanged == ["abc"]


async def test_oauth_state_rejects_a_different_caller(client, fake_oauth, token_manager, store_token):
    await store_token("intruder", access_token="INTRUDER-ACCESS")
    state = await _start_state(client)

    resp = await client.get(
        "/google/oauth/callback",
        params={"code": "abc", "state": state},
        headers={"X-User-Id": "intruder"},
    )

    assert resp.status_code == 403
    assert fake_oauth.exchanged == []
    assert await token_manager.get_valid_access_token("intruder") == "INTRUDER-ACCESS"


async def test_oauth_callback_requires_code(client):
    state = await _start_state(client)
    resp = await client.get("/google/oauth/callback", params={"state": state})
    assert resp.status_code == 400


async def test_revoke_token(client, authorized):
    resp = await client.delete("/google/oauth/token", headers=OWNER)
    assert resp.json() == {"ok": True, "deleted": True}

    resp = await client.post("/locations/sync", headers=OWNER)
    assert resp.status_code == 401


async def test_sync_without_credential_is_401(client):
    resp = await client.post("/reviews/sync", headers=OWNER)

    assert resp.status_code == 401
    body = resp.json()
    assert body["ok"] is False
    assert body["code"] == "not_authorized"


async def test_sync_reply_and_delete_flow(client, authorized):
    resp = await client.post("/locations/sync", headers=OWNER)
    assert resp.status_code == 200
    assert resp.json()["synced_count"] == 2

    resp = await client.post("/reviews/sync", headers=OWNER)
    body = resp.json()
    assert body["ok"] is True
    assert body["total_reviews"] == 3
    assert body["synced_workspaces"] == 2
    assert body["warnings"] == []

    workspaces = (await client.get("/workspaces", headers=OWNER)).json()["workspaces"]
    shibuya = next(ws for ws in workspaces if ws["name"] == "Cafe Shibuya")
    reviews = (await client.get(f"/workspaces/{shibuya['id']}/reviews", headers=OWNER)).json()["reviews"]
    target = next(r for r in reviews if r["status"] == "unreplied")
    assert target["rating"] == 2

    resp = await client.post(f"/reviews/{target['id']}/reply", json={"reply_text": "So sorry!"}, headers=OWNER)
    assert resp.status_code == 200
    assert resp.json()["review"]["status"] == "replied"
    assert resp.json()["review"]["reply_text"] == "So sorry!"

    resp = await client.delete(f"/reviews/{target['id']}/reply", headers=OWNER)
    assert resp.status_code == 200

    # mock upstream no longer has a reply, so the second delete is a 404
    resp = await client.delete(f"/reviews/{target['id']}/reply", headers=OWNER)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


async def test_empty_reply_is_400(client, authorized):
    resp = await client.post("/reviews/whatever/reply", json={"reply_text": ""}, headers=OWNER)
    assert resp.status_code == 400


async def test_other_owner_cannot_see_workspace_reviews(client, authorized):
    await client.post("/locations/sync", headers=OWNER)
    [ws, _] = (await client.get("/workspaces", headers=OWNER)).json()["workspaces"]

    resp = await client.get(f"/workspaces/{ws['id']}/reviews", headers={"X-User-Id": "intruder"})
    assert resp.status_code == 404
    resp = await client.delete(f"/workspaces/{ws['id']}", headers={"X-User-Id": "intruder"})
    assert resp.status_code == 404
    resp = await client.delete(f"/workspaces/{ws['id']}", headers=OWNER)
    assert resp.status_code == 200


async def test_store_analysis(client, authorized):
    await client.post("/locations/sync", headers=OWNER)
    await client.post("/reviews/sync", headers=OWNER)
    workspaces = (await client.get("/workspaces", headers=OWNER)).json()["workspaces"]
    reviews = (await client.get(f"/workspaces/{workspaces[0]['id']}/reviews", headers=OWNER)).json()["reviews"]
    review_id = reviews[0]["id"]

    resp = await client.put(f"/reviews/{review_id}/analysis", headers=OWNER, json={
        "summary": "Happy customer",
        "risk": "low",
        "categories": ["coffee"],
    })
    assert resp.status_code == 200

    reviews = (await client.get(f"/workspaces/{workspaces[0]['id']}/reviews", headers=OWNER)).json()["reviews"]
    annotated = next(r for r in reviews if r["id"] == review_id)
    assert annotated["risk"] == "low"
    assert annotated["ai_summary"] == "Happy customer"
    assert annotated["ai_categories"] == ["coffee"]


async def test_rate_limit_returns_429_with_reset_headers(client, authorized):
    for _ in range(DEFAULT_POLICY.max_requests):
        resp = await client.post("/reviews/sync", headers=OWNER)
        assert resp.status_code == 200

    resp = await client.post("/reviews/sync", headers=OWNER)
    assert resp.status_code == 429
    assert resp.json()["code"] == "rate_limited"
    assert 0 < int(resp.headers["Retry-After"]) <= 60
    assert "X-RateLimit-Reset" in resp.headers

    # another caller has its own window
    resp = await client.post("/reviews/sync", headers={"X-User-Id": "someone-else"})
    assert resp.status_code == 401
