# reviewdesk/google/mock.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from reviewdesk.errors import NotFoundError
from reviewdesk.models import Location, ReviewReply, UpstreamReview

log = logging.getLogger(__name__)

MOCK_ACCOUNT = "accounts/000000000"
_BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def _seed() -> Dict[str, List[UpstreamReview]]:
    shibuya = f"{MOCK_ACCOUNT}/locations/1001"
    umeda = f"{MOCK_ACCOUNT}/locations/1002"
    return {
        shibuya: [
            UpstreamReview(
                review_id=f"{shibuya}/reviews/r1",
                reviewer_name="Aiko T.",
                star_rating="FIVE",
                comment="Great coffee and friendly staff.",
                create_time=_BASE_TIME,
                update_time=_BASE_TIME,
                reply=ReviewReply("Thank you for visiting!", _BASE_TIME + timedelta(hours=3)),
            ),
            UpstreamReview(
                review_id=f"{shibuya}/reviews/r2",
                reviewer_name="Ken M.",
                star_rating="TWO",
                comment="Waited 20 minutes for a latte.",
                create_time=_BASE_TIME + timedelta(days=2),
                update_time=_BASE_TIME + timedelta(days=2),
            ),
        ],
        umeda: [
            UpstreamReview(
                review_id=f"{umeda}/reviews/r3",
                reviewer_name="Anonymous",
                star_rating="FOUR",
                comment="",
                create_time=_BASE_TIME + timedelta(days=5),
                update_time=_BASE_TIME + timedelta(days=5),
            ),
        ],
    }


class MockBusinessClient:
    """
    In-memory stand-in for GoogleBusinessClient (USE_MOCK_DATA=true).
    Replies are kept in memory so post/delete round-trips behave like upstream.
    """

    def __init__(self):
        self._reviews = _seed()
        self._names = {
            f"{MOCK_ACCOUNT}/locations/1001": ("Cafe Shibuya", "1-2-3 Shibuya, Tokyo, 150-0002"),
            f"{MOCK_ACCOUNT}/locations/1002": ("Cafe Umeda", "4-5-6 Umeda, Osaka, 530-0001"),
        }

    async def aclose(self) -> None:
        return None

    async def list_locations(self, access_token: str) -> List[Location]:
        return [Location(location_id=lid, name=name, address=addr)
                for lid, (name, addr) in self._names.items()]

    async def list_reviews(self, location_id: str, access_token: str) -> List[UpstreamReview]:
        return list(self._reviews.get(location_id, []))

    async def post_reply(self, review_id: str, text: str, access_token: str) -> None:
        review = self._find(review_id)
        review.reply = ReviewReply(text, datetime.now(timezone.utc))
        log.info("[mock] reply posted to %s", review_id)

    async def delete_reply(self, review_id: str, access_token: str) -> None:
        review = self._find(review_id)
        if review.reply is None:
            raise NotFoundError(f"Review {review_id} has no reply")
        review.reply = None
        log.info("[mock] reply deleted from %s", review_id)

    def _find(self, review_id: str) -> UpstreamReview:
        for reviews in self._reviews.values():
            for r in reviews:
                if r.review_id == review_id:
                    return r
        raise NotFoundError(f"Review {review_id} not found")
