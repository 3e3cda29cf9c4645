# reviewdesk/google/tokens.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.errors import DatabaseError
from reviewdesk.models import OAuthToken
from reviewdesk.utils.common import utcnow

GOOGLE = "google"


async def get_token(db: AsyncSession, user_id: str, provider: str = GOOGLE) -> Optional[OAuthToken]:
    """
    Get the stored token for a user.
    (No refresh logic here; token_manager handles that.)
    """
    try:
        result = await db.execute(
            select(OAuthToken)
            .where(OAuthToken.user_id == user_id, OAuthToken.provider == provider)
            .execution_options(populate_existing=True)
        )
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to load token for {user_id}: {e}") from e
    return result.scalar_one_or_none()


async def save_token(
    db: AsyncSession,
    user_id: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    provider: str = GOOGLE,
) -> OAuthToken:
    """
    Insert or update the user's token row.
    A missing/empty refresh_token never overwrites the one already stored.
    """
    try:
        token = await get_token(db, user_id, provider)
        now = utcnow()
        if token:
            token.access_token = access_token
            if refresh_token:
                token.refresh_token = refresh_token
            token.expires_at = expires_at
            token.updated_at = now
        else:
            token = OAuthToken(
                user_id=user_id,
                provider=provider,
                access_token=access_token,
                refresh_token=refresh_token or None,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            db.add(token)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Failed to save token for {user_id}: {e}") from e
    return token


async def delete_token(db: AsyncSession, user_id: str, provider: str = GOOGLE) -> bool:
    """Revoke locally: drop the row. Returns True if something was deleted."""
    try:
        result = await db.execute(
            delete(OAuthToken).where(OAuthToken.user_id == user_id, OAuthToken.provider == provider)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Failed to delete token for {user_id}: {e}") from e
    return bool(result.rowcount)
