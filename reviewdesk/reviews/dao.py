# reviewdesk/reviews/dao.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.db import upsert_stmt
from reviewdesk.errors import DatabaseError, NotFoundError, ValidationError
from reviewdesk.models import Review, ReviewAnalysis, ReviewStatus, UpstreamReview, Workspace
from reviewdesk.utils.common import DEFAULT_STAR_RATING, STAR_RATINGS, utcnow

# Columns sync owns. AI annotations (risk, ai_*, reply_draft), id and created_at
# are never in this list; a re-sync must not wipe them.
_SYNCED_COLUMNS = (
    "workspace_id",
    "author_name",
    "author_photo_url",
    "rating",
    "comment",
    "review_created_at",
    "reply_text",
    "reply_created_at",
    "status",
    "updated_at",
)


def star_rating_to_int(star_rating: Optional[str]) -> int:
    """ONE..FIVE -> 1..5; a missing rating counts as THREE."""
    key = (star_rating or DEFAULT_STAR_RATING).upper()
    try:
        return STAR_RATINGS[key]
    except KeyError:
        raise ValidationError(f"Unrecognized star rating: {star_rating!r}")


def derive_status(review: UpstreamReview) -> ReviewStatus:
    if review.reply and review.reply.comment:
        return ReviewStatus.REPLIED
    return ReviewStatus.UNREPLIED


def _row_from_upstream(workspace_id: str, review: UpstreamReview, now: datetime) -> Dict[str, Any]:
    has_reply = derive_status(review) is ReviewStatus.REPLIED
    return {
        "id": str(uuid.uuid4()),
        "workspace_id": workspace_id,
        "google_review_id": review.review_id,
        "author_name": review.reviewer_name,
        "author_photo_url": review.reviewer_photo_url,
        "rating": star_rating_to_int(review.star_rating),
        "comment": review.comment or "",
        "review_created_at": review.create_time,
        "reply_text": review.reply.comment if has_reply else None,
        "reply_created_at": review.reply.update_time if has_reply else None,
        "status": derive_status(review).value,
        "created_at": now,
        "updated_at": now,
    }


# ──────────────────────────────────────────────────────────────────────────────
# SYNC (reviews keyed by google_review_id, last write wins)
# ──────────────────────────────────────────────────────────────────────────────
async def sync_reviews(db: AsyncSession, workspace_id: str, reviews: List[UpstreamReview]) -> int:
    """
    Upsert upstream reviews for one workspace. Returns rows affected.
    """
    if not reviews:
        return 0

    now = utcnow()
    # one row per google_review_id; ON CONFLICT can't hit the same row twice
    by_id = {r.review_id: _row_from_upstream(workspace_id, r, now) for r in reviews}
    rows = list(by_id.values())

    table = Review.__table__
    stmt = upsert_stmt(db, table).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.google_review_id],
        set_={col: stmt.excluded[col] for col in _SYNCED_COLUMNS},
    ).returning(table.c.id)

    try:
        result = await db.execute(stmt)
        synced = len(result.scalars().all())
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Review sync failed for workspace {workspace_id}: {e}") from e
    return synced


# ──────────────────────────────────────────────────────────────────────────────
# READS / LOCAL WRITES
# ──────────────────────────────────────────────────────────────────────────────
async def get_review(db: AsyncSession, review_id: str) -> Review:
    try:
        review = await db.get(Review, review_id, populate_existing=True)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load review {review_id}: {e}") from e
    if review is None:
        raise NotFoundError(f"Review {review_id} not found")
    return review


async def get_owned_review(db: AsyncSession, review_id: str, owner_id: str) -> Review:
    """get_review, but only if the review's workspace belongs to owner_id."""
    try:
        result = await db.execute(
            select(Review)
            .join(Workspace, Workspace.id == Review.workspace_id)
            .where(Review.id == review_id, Workspace.owner_id == owner_id)
        )
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load review {review_id}: {e}") from e
    review = result.scalar_one_or_none()
    if review is None:
        raise NotFoundError(f"Review {review_id} not found")
    return review


async def list_reviews(db: AsyncSession, workspace_id: str) -> List[Review]:
    """Reviews for a workspace, newest first."""
    try:
        result = await db.execute(
            select(Review)
            .where(Review.workspace_id == workspace_id)
            .order_by(Review.review_created_at.desc())
        )
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load reviews for workspace {workspace_id}: {e}") from e
    return list(result.scalars().all())


async def _update_review(db: AsyncSession, review_id: str, values: Dict[str, Any]) -> None:
    try:
        result = await db.execute(
            update(Review).where(Review.id == review_id).values(**values, updated_at=utcnow())
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Failed to update review {review_id}: {e}") from e
    if not result.rowcount:
        raise NotFoundError(f"Review {review_id} not found")


async def update_review_reply(db: AsyncSession, review_id: str, reply_text: str,
                              replied_at: Optional[datetime] = None) -> None:
    await _update_review(db, review_id, {
        "reply_text": reply_text,
        "reply_created_at": replied_at or utcnow(),
        "status": ReviewStatus.REPLIED.value,
    })


async def clear_review_reply(db: AsyncSession, review_id: str) -> None:
    await _update_review(db, review_id, {
        "reply_text": None,
        "reply_created_at": None,
        "status": ReviewStatus.UNREPLIED.value,
    })


async def update_review_analysis(db: AsyncSession, review_id: str, analysis: ReviewAnalysis) -> None:
    await _update_review(db, review_id, {
        "ai_summary": analysis.summary,
        "risk": analysis.risk.value,
        "ai_categories": list(analysis.categories),
        "ai_risk_reason": analysis.risk_reason,
        "reply_draft": analysis.reply_draft,
    })
