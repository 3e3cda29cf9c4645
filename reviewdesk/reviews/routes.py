# reviewdesk/reviews/routes.py
from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reviewdesk.db import get_db, get_session_factory
from reviewdesk.errors import NotFoundError
from reviewdesk.google.business import BusinessClient
from reviewdesk.google.oauth_routes import get_token_manager
from reviewdesk.google.token_manager import TokenManager
from reviewdesk.models import AnalysisInput, ReplyInput, Review, Workspace
from reviewdesk.ratelimit import AI_ANALYSIS_POLICY, DEFAULT_POLICY, get_current_user_id, rate_limited
from reviewdesk.workspaces.dao import delete_workspace, get_workspace, get_workspaces

from .dao import get_owned_review, list_reviews, update_review_analysis
from .sync import delete_review_reply, reply_to_review, sync_all_reviews, sync_locations

router = APIRouter(tags=["Reviews"])


def get_business_client(request: Request) -> BusinessClient:
    return request.app.state.business_client


def _iso(dt):
    return dt.isoformat() if dt else None


def _workspace_out(ws: Workspace) -> Dict[str, Any]:
    return {
        "id":                 ws.id,
        "google_location_id": ws.google_location_id,
        "name":               ws.name,
        "address":            ws.address,
        "created_at":         _iso(ws.created_at),
        "updated_at":         _iso(ws.updated_at),
    }


def _review_out(r: Review) -> Dict[str, Any]:
    return {
        "id":                r.id,
        "workspace_id":      r.workspace_id,
        "google_review_id":  r.google_review_id,
        "author_name":       r.author_name,
        "author_photo_url":  r.author_photo_url,
        "rating":            r.rating,
        "comment":           r.comment,
        "review_created_at": _iso(r.review_created_at),
        "reply_text":        r.reply_text,
        "reply_created_at":  _iso(r.reply_created_at),
        "status":            r.status,
        "risk":              r.risk,
        "ai_summary":        r.ai_summary,
        "ai_categories":     r.ai_categories,
        "ai_risk_reason":    r.ai_risk_reason,
        "reply_draft":       r.reply_draft,
    }


# ─── Sync ─────────────────────────────────────────────────────────────────────
@router.post("/locations/sync", dependencies=[Depends(rate_limited(DEFAULT_POLICY))])
async def sync_locations_route(
    user_id: str = Depends(get_current_user_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    tokens: TokenManager = Depends(get_token_manager),
    client: BusinessClient = Depends(get_business_client),
):
    result = await sync_locations(user_id, session_factory=session_factory, tokens=tokens, client=client)
    return {
        "ok": True,
        "synced_count": result.synced_count,
        "locations": [asdict(loc) for loc in result.locations],
    }


@router.post("/reviews/sync", dependencies=[Depends(rate_limited(DEFAULT_POLICY))])
async def sync_reviews_route(
    user_id: str = Depends(get_current_user_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    tokens: TokenManager = Depends(get_token_manager),
    client: BusinessClient = Depends(get_business_client),
):
    result = await sync_all_reviews(user_id, session_factory=session_factory, tokens=tokens, client=client)
    return {"ok": True, **asdict(result)}


# ─── Workspaces ───────────────────────────────────────────────────────────────
@router.get("/workspaces")
async def list_workspaces_route(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    workspaces = await get_workspaces(db, user_id)
    return {"ok": True, "workspaces": [_workspace_out(ws) for ws in workspaces]}


@router.delete("/workspaces/{workspace_id}")
async def delete_workspace_route(
    workspace_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not await delete_workspace(db, workspace_id, user_id):
        raise NotFoundError(f"Workspace {workspace_id} not found")
    return {"ok": True}


@router.get("/workspaces/{workspace_id}/reviews")
async def list_workspace_reviews_route(
    workspace_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    ws = await get_workspace(db, workspace_id)
    if ws is None or ws.owner_id != user_id:
        raise NotFoundError(f"Workspace {workspace_id} not found")
    reviews = await list_reviews(db, workspace_id)
    return {"ok": True, "reviews": [_review_out(r) for r in reviews]}


# ─── Replies / analysis ───────────────────────────────────────────────────────
@router.post("/reviews/{review_id}/reply", dependencies=[Depends(rate_limited(DEFAULT_POLICY))])
async def post_reply_route(
    review_id: str,
    body: ReplyInput,
    user_id: str = Depends(get_current_user_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    tokens: TokenManager = Depends(get_token_manager),
    client: BusinessClient = Depends(get_business_client),
):
    review = await reply_to_review(
        user_id, review_id, body.reply_text,
        session_factory=session_factory, tokens=tokens, client=client,
    )
    return {"ok": True, "review": _review_out(review)}


@router.delete("/reviews/{review_id}/reply", dependencies=[Depends(rate_limited(DEFAULT_POLICY))])
async def delete_reply_route(
    review_id: str,
    user_id: str = Depends(get_current_user_id),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    tokens: TokenManager = Depends(get_token_manager),
    client: BusinessClient = Depends(get_business_client),
):
    await delete_review_reply(user_id, review_id, session_factory=session_factory, tokens=tokens, client=client)
    return {"ok": True}


@router.put("/reviews/{review_id}/analysis", dependencies=[Depends(rate_limited(AI_ANALYSIS_POLICY))])
async def store_analysis_route(
    review_id: str,
    body: AnalysisInput,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await get_owned_review(db, review_id, user_id)
    await update_review_analysis(db, review_id, body.to_analysis())
    return {"ok": True}
