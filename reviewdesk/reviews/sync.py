# reviewdesk/reviews/sync.py
from __future__ import annotations

import asyncio
import logging
from typing import List

from sqlalchemy.ext.asyncio import async_sessionmaker

from reviewdesk.errors import ValidationError
from reviewdesk.google.business import BusinessClient
from reviewdesk.google.token_manager import TokenManager
from reviewdesk.models import LocationSyncResult, Review, ReviewSyncResult, SyncWarning, Workspace
from reviewdesk.utils.common import utcnow
from reviewdesk.workspaces.dao import get_workspaces, sync_workspaces

from .dao import clear_review_reply, get_owned_review, get_review, sync_reviews, update_review_reply

log = logging.getLogger(__name__)


async def sync_locations(
    owner_id: str,
    *,
    session_factory: async_sessionmaker,
    tokens: TokenManager,
    client: BusinessClient,
) -> LocationSyncResult:
    """
    Phase A: pull the owner's Business Profile locations into workspaces.
    """
    access_token = await tokens.get_valid_access_token(owner_id)
    locations = await client.list_locations(access_token)

    async with session_factory() as db:
        synced = await sync_workspaces(db, owner_id, locations)

    log.info("Location sync for %s: %d fetched, %d synced", owner_id, len(locations), synced)
    return LocationSyncResult(synced_count=synced, locations=locations)


async def _sync_workspace_reviews(
    workspace: Workspace,
    access_token: str,
    *,
    session_factory: async_sessionmaker,
    client: BusinessClient,
) -> int:
    reviews = await client.list_reviews(workspace.google_location_id, access_token)
    if not reviews:
        log.info("Workspace %r has no reviews upstream", workspace.name)
        return 0

    # own session per task; AsyncSession is not safe to share across tasks
    async with session_factory() as db:
        synced = await sync_reviews(db, workspace.id, reviews)
    log.info("Workspace %r: %d reviews synced", workspace.name, synced)
    return synced


async def sync_all_reviews(
    owner_id: str,
    *,
    session_factory: async_sessionmaker,
    tokens: TokenManager,
    client: BusinessClient,
) -> ReviewSyncResult:
    """
    Phase B fan-out: fetch + upsert reviews for every workspace concurrently.

    One workspace failing never cancels the others; its error becomes a
    warning and the sync still reports success. If every workspace fails,
    the first failure is raised as-is.
    """
    access_token = await tokens.get_valid_access_token(owner_id)

    async with session_factory() as db:
        workspaces = await get_workspaces(db, owner_id)

    result = ReviewSyncResult()
    if not workspaces:
        log.info("Review sync for %s: no workspaces to sync", owner_id)
        return result

    outcomes = await asyncio.gather(
        *(
            _sync_workspace_reviews(ws, access_token, session_factory=session_factory, client=client)
            for ws in workspaces
        ),
        return_exceptions=True,
    )

    failures: List[BaseException] = []
    for ws, outcome in zip(workspaces, outcomes):
        if isinstance(outcome, BaseException):
            log.warning("Review sync failed for workspace %r: %s", ws.name, outcome)
            failures.append(outcome)
            result.warnings.append(SyncWarning(workspace_name=ws.name, error=str(outcome)))
        else:
            result.total_reviews += outcome
            result.synced_workspaces += 1

    if len(failures) == len(workspaces):
        raise failures[0]

    log.info(
        "Review sync for %s: %d reviews across %d/%d workspaces (%d warnings)",
        owner_id, result.total_reviews, result.synced_workspaces, len(workspaces), len(result.warnings),
    )
    return result


# ──────────────────────────────────────────────────────────────────────────────
# Replies: upstream first, local row only after upstream succeeded
# ──────────────────────────────────────────────────────────────────────────────
async def reply_to_review(
    owner_id: str,
    review_id: str,
    reply_text: str,
    *,
    session_factory: async_sessionmaker,
    tokens: TokenManager,
    client: BusinessClient,
) -> Review:
    if not reply_text or not reply_text.strip():
        raise ValidationError("reply_text is required")

    access_token = await tokens.get_valid_access_token(owner_id)
    async with session_factory() as db:
        review = await get_owned_review(db, review_id, owner_id)

    await client.post_reply(review.google_review_id, reply_text, access_token)

    async with session_factory() as db:
        await update_review_reply(db, review_id, reply_text, utcnow())
        return await get_review(db, review_id)


async def delete_review_reply(
    owner_id: str,
    review_id: str,
    *,
    session_factory: async_sessionmaker,
    tokens: TokenManager,
    client: BusinessClient,
) -> None:
    access_token = await tokens.get_valid_access_token(owner_id)
    async with session_factory() as db:
        review = await get_owned_review(db, review_id, owner_id)

    await client.delete_reply(review.google_review_id, access_token)

    async with session_factory() as db:
        await clear_review_reply(db, review_id)
