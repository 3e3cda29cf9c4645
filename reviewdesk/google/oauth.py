# reviewdesk/google/oauth.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

import httpx

from reviewdesk.errors import RefreshFailedError, RefreshRejectedError, RefreshUnavailableError
from reviewdesk.models import TokenGrant

log = logging.getLogger(__name__)

GOOGLE_AUTH_ENDPOINT  = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"


class GoogleOAuthClient:
    """
    Talks to Google's OAuth 2.0 token endpoint: consent URL, code exchange, refresh.
    Holds no token state; persistence lives in tokens.py / token_manager.py.
    """

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: List[str],
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scopes = scopes
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id":     self._client_id,
            "redirect_uri":  self._redirect_uri,
            "response_type": "code",
            "scope":         " ".join(self._scopes),
            "access_type":   "offline",   # ask for a refresh token
            "prompt":        "consent",   # Google only re-issues refresh tokens on consent
            "state":         state,
        }
        return GOOGLE_AUTH_ENDPOINT + "?" + urlencode(params)

    async def exchange_code(self, code: str) -> TokenGrant:
        return await self._token_request({
            "grant_type":    "authorization_code",
            "code":          code,
            "redirect_uri":  self._redirect_uri,
            "client_id":     self._client_id,
            "client_secret": self._client_secret,
        })

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Trade a refresh token for a new access token. Google usually omits
        refresh_token in the response; callers must keep the old one then.
        """
        return await self._token_request({
            "grant_type":    "refresh_token",
            "refresh_token": refresh_token,
            "client_id":     self._client_id,
            "client_secret": self._client_secret,
        })

    async def _token_request(self, form: Dict[str, str]) -> TokenGrant:
        grant_type = form["grant_type"]
        try:
            resp = await self._http.post(
                GOOGLE_TOKEN_ENDPOINT,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as e:
            raise RefreshUnavailableError(f"Token endpoint unreachable ({grant_type}): {e}") from e

        if resp.status_code != 200:
            raise _classify_token_failure(resp, grant_type)

        data = resp.json()
        return TokenGrant(
            access_token=data["access_token"],
            expires_in=int(data.get("expires_in", 3600)),
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type", "Bearer"),
        )


def _classify_token_failure(resp: httpx.Response, grant_type: str) -> RefreshFailedError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    reason = body.get("error_description") or body.get("error") or resp.text[:200]
    message = f"Token request failed ({grant_type}, HTTP {resp.status_code}): {reason}"
    log.warning("Google token endpoint returned %s for %s: %s", resp.status_code, grant_type, body.get("error"))

    if resp.status_code >= 500:
        return RefreshUnavailableError(message, status_code=resp.status_code)
    # 400 invalid_grant (revoked / expired refresh token), 401 invalid_client, ...
    return RefreshRejectedError(message, status_code=resp.status_code)
