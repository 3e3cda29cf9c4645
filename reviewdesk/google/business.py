# reviewdesk/google/business.py
"""
Google Business Profile connector.

Purpose
- Small async wrapper over the account, location and review endpoints.
- Every call takes the access token explicitly; this module never loads or
  refreshes tokens (see token_manager.py), so it stays stateless and testable.
- Non-2xx responses are normalized onto reviewdesk.errors. No retries here;
  retry policy belongs to the caller.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx

from reviewdesk.errors import NotFoundError, TransientUpstreamError, classify_status
from reviewdesk.models import Location, ReviewReply, UpstreamReview
from reviewdesk.utils.common import format_address, parse_rfc3339

log = logging.getLogger(__name__)

ACCOUNTS_API_BASE = "https://mybusinessaccountmanagement.googleapis.com/v1"
INFO_API_BASE     = "https://mybusinessbusinessinformation.googleapis.com/v1"
REVIEWS_API_BASE  = "https://mybusiness.googleapis.com/v4"

LOCATION_READ_MASK = "name,title,storefrontAddress,metadata"
ANONYMOUS_REVIEWER = "Anonymous"


class BusinessClient(Protocol):
    """What the sync engine needs from the review platform (real or mock)."""

    async def list_locations(self, access_token: str) -> List[Location]: ...

    async def list_reviews(self, location_id: str, access_token: str) -> List[UpstreamReview]: ...

    async def post_reply(self, review_id: str, text: str, access_token: str) -> None: ...

    async def delete_reply(self, review_id: str, access_token: str) -> None: ...

    async def aclose(self) -> None: ...


class GoogleBusinessClient:
    def __init__(self, http: Optional[httpx.AsyncClient] = None, *, timeout: float = 30.0):
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ─── Accounts / locations ────────────────────────────────────────────────
    async def get_account_id(self, access_token: str) -> str:
        """First account the token can see, e.g. "accounts/123456789"."""
        data = await self._request("GET", f"{ACCOUNTS_API_BASE}/accounts", access_token, what="accounts")
        accounts = data.get("accounts") or []
        if not accounts:
            raise NotFoundError("No Google Business Profile account found for this user")
        return accounts[0]["name"]

    async def list_locations(self, access_token: str) -> List[Location]:
        account_id = await self.get_account_id(access_token)
        locations: List[Location] = []
        async for page in self._paginate(
            f"{INFO_API_BASE}/{account_id}/locations",
            access_token,
            params={"readMask": LOCATION_READ_MASK, "pageSize": 100},
            what="locations",
        ):
            for loc in page.get("locations") or []:
                locations.append(_location_from_api(account_id, loc))

        if not locations:
            log.info("Account %s has no locations", account_id)
        return locations

    # ─── Reviews ─────────────────────────────────────────────────────────────
    async def list_reviews(self, location_id: str, access_token: str) -> List[UpstreamReview]:
        """
        All reviews for a location. A 404 means a freshly connected location
        with nothing to return yet, so it yields [] instead of raising.
        """
        reviews: List[UpstreamReview] = []
        try:
            async for page in self._paginate(
                f"{REVIEWS_API_BASE}/{location_id}/reviews",
                access_token,
                params={"pageSize": 50},
                what="reviews",
            ):
                reviews.extend(_review_from_api(r) for r in page.get("reviews") or [])
        except NotFoundError:
            log.info("No reviews found for %s (upstream 404)", location_id)
            return []
        return reviews

    async def post_reply(self, review_id: str, text: str, access_token: str) -> None:
        # PUT replaces any existing reply, so re-posting is safe
        await self._request(
            "PUT", f"{REVIEWS_API_BASE}/{review_id}/reply", access_token,
            json_body={"comment": text}, what="reply",
        )

    async def delete_reply(self, review_id: str, access_token: str) -> None:
        await self._request("DELETE", f"{REVIEWS_API_BASE}/{review_id}/reply", access_token, what="reply")

    # ─── HTTP plumbing ───────────────────────────────────────────────────────
    async def _paginate(self, url: str, access_token: str, *, params: Dict[str, Any],
                        what: str) -> AsyncIterator[Dict[str, Any]]:
        params = dict(params)
        while True:
            page = await self._request("GET", url, access_token, params=params, what=what)
            yield page
            nxt = page.get("nextPageToken")
            if not nxt:
                break
            params["pageToken"] = nxt

    async def _request(self, method: str, url: str, access_token: str, *,
                       params: Optional[Dict[str, Any]] = None,
                       json_body: Optional[Dict[str, Any]] = None,
                       what: str) -> Dict[str, Any]:
        try:
            resp = await self._http.request(
                method,
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                params=params,
                json=json_body,
            )
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"{method} {what} failed: {e}") from e

        if resp.status_code >= 400:
            log.warning("Business Profile %s %s -> HTTP %s", method, what, resp.status_code)
            raise classify_status(resp.status_code, f"{method} {what} failed: HTTP {resp.status_code}: {resp.text[:200]}")

        if not resp.content:
            return {}
        return resp.json() or {}


# ─── Payload mapping ─────────────────────────────────────────────────────────
def _location_from_api(account_id: str, loc: Dict[str, Any]) -> Location:
    name = loc.get("name") or ""
    # Business Information returns "locations/456"; the v4 reviews API wants the account prefix
    location_id = name if name.startswith("accounts/") else f"{account_id}/{name}"
    return Location(
        location_id=location_id,
        name=loc.get("title") or name or "Untitled location",
        address=format_address(loc.get("storefrontAddress")),
        place_id=(loc.get("metadata") or {}).get("placeId"),
    )


def _review_from_api(r: Dict[str, Any]) -> UpstreamReview:
    reviewer = r.get("reviewer") or {}
    reply = r.get("reviewReply")
    return UpstreamReview(
        review_id=r.get("name") or r["reviewId"],
        reviewer_name=reviewer.get("displayName") or ANONYMOUS_REVIEWER,
        reviewer_photo_url=reviewer.get("profilePhotoUrl"),
        star_rating=r.get("starRating"),
        comment=r.get("comment") or "",
        create_time=parse_rfc3339(r.get("createTime")),
        update_time=parse_rfc3339(r.get("updateTime")),
        reply=ReviewReply(
            comment=reply.get("comment") or "",
            update_time=parse_rfc3339(reply.get("updateTime")),
        ) if reply else None,
    )
