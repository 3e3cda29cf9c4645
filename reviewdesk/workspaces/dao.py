# reviewdesk/workspaces/dao.py
from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.db import upsert_stmt
from reviewdesk.errors import DatabaseError
from reviewdesk.models import Location, Workspace
from reviewdesk.utils.common import utcnow

# Columns refreshed when a location is re-imported; id/owner/created_at stay put
_MUTABLE_COLUMNS = ("name", "address", "updated_at")


async def sync_workspaces(db: AsyncSession, owner_id: str, locations: List[Location]) -> int:
    """
    Upsert one workspace per location on (owner_id, google_location_id).
    Workspaces missing from `locations` are left alone. Returns rows affected.
    """
    if not locations:
        return 0

    now = utcnow()
    rows = [{
        "id": str(uuid.uuid4()),
        "owner_id": owner_id,
        "google_location_id": loc.location_id,
        "name": loc.name,
        "address": loc.address or None,
        "created_at": now,
        "updated_at": now,
    } for loc in _dedupe(locations)]

    table = Workspace.__table__
    stmt = upsert_stmt(db, table).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.owner_id, table.c.google_location_id],
        set_={col: stmt.excluded[col] for col in _MUTABLE_COLUMNS},
    ).returning(table.c.id)

    try:
        result = await db.execute(stmt)
        synced = len(result.scalars().all())
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Workspace sync failed for owner {owner_id}: {e}") from e
    return synced


def _dedupe(locations: List[Location]) -> List[Location]:
    # ON CONFLICT cannot touch the same row twice in one statement; last one wins
    by_id = {loc.location_id: loc for loc in locations}
    return list(by_id.values())


async def get_workspaces(db: AsyncSession, owner_id: str) -> List[Workspace]:
    """Owner's workspaces, newest first."""
    try:
        result = await db.execute(
            select(Workspace)
            .where(Workspace.owner_id == owner_id)
            .order_by(Workspace.created_at.desc())
        )
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load workspaces for owner {owner_id}: {e}") from e
    return list(result.scalars().all())


async def get_workspace(db: AsyncSession, workspace_id: str) -> Optional[Workspace]:
    try:
        return await db.get(Workspace, workspace_id, populate_existing=True)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load workspace {workspace_id}: {e}") from e


async def delete_workspace(db: AsyncSession, workspace_id: str, owner_id: str) -> bool:
    """Delete a workspace, only if it belongs to owner_id."""
    try:
        result = await db.execute(
            delete(Workspace).where(Workspace.id == workspace_id, Workspace.owner_id == owner_id)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Failed to delete workspace {workspace_id}: {e}") from e
    return bool(result.rowcount)
