# reviewdesk/google/token_manager.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from reviewdesk.errors import AuthenticationError, NotAuthorizedError
from reviewdesk.models import OAuthToken, TokenGrant
from reviewdesk.utils.common import ensure_utc, utcnow

from .oauth import GoogleOAuthClient
from .tokens import GOOGLE, delete_token, get_token, save_token

log = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


@dataclass
class _RefreshSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def is_token_valid(expires_at: Optional[datetime], now: datetime,
                   buffer: timedelta = DEFAULT_REFRESH_BUFFER) -> bool:
    """
    True while `now` is still more than `buffer` before expiry, so a token
    never runs out halfway through the call that uses it.
    A missing expiry counts as expired.
    """
    expires_at = ensure_utc(expires_at)
    if expires_at is None:
        return False
    return now < expires_at - buffer


class TokenManager:
    """
    Hands out a usable Google access token for a user, refreshing it first
    when it is inside the expiry buffer.

    Each store access uses its own short-lived session, and refreshes are
    single-flight per user: concurrent callers wait on one refresh and then
    re-read the stored token instead of refreshing again.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        oauth: GoogleOAuthClient,
        *,
        provider: str = GOOGLE,
        buffer: timedelta = DEFAULT_REFRESH_BUFFER,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._oauth = oauth
        self._provider = provider
        self._buffer = buffer
        self._clock = clock
        self._refresh_slots: Dict[str, _RefreshSlot] = {}

    async def get_valid_access_token(self, user_id: str) -> str:
        token = await self._load(user_id)
        if is_token_valid(token.expires_at, self._clock(), self._buffer):
            return token.access_token

        slot = self._refresh_slots.setdefault(user_id, _RefreshSlot())
        slot.users += 1
        try:
            async with slot.lock:
                # another caller may have refreshed while we waited
                token = await self._load(user_id)
                if is_token_valid(token.expires_at, self._clock(), self._buffer):
                    return token.access_token
                return await self._refresh(token)
        finally:
            slot.users -= 1
            if not slot.users:
                del self._refresh_slots[user_id]

    @property
    def pending_refreshes(self) -> int:
        """Users with a refresh in flight or queued."""
        return len(self._refresh_slots)

    async def store_grant(self, user_id: str, grant: TokenGrant) -> None:
        """Persist the tokens from a fresh authorization (OAuth callback)."""
        async with self._session_factory() as db:
            await save_token(
                db,
                user_id,
                grant.access_token,
                refresh_token=grant.refresh_token,
                expires_at=self._clock() + timedelta(seconds=grant.expires_in),
                provider=self._provider,
            )
        log.info("Stored %s credential for user %s (refresh token in response: %s)",
                 self._provider, user_id, bool(grant.refresh_token))

    async def revoke(self, user_id: str) -> bool:
        async with self._session_factory() as db:
            return await delete_token(db, user_id, self._provider)

    async def _load(self, user_id: str) -> OAuthToken:
        async with self._session_factory() as db:
            token = await get_token(db, user_id, self._provider)
        if token is None or not token.access_token:
            raise NotAuthorizedError(f"No {self._provider} credential on file for user {user_id}")
        return token

    async def _refresh(self, token: OAuthToken) -> str:
        if not token.refresh_token:
            raise AuthenticationError(
                f"Access token for user {token.user_id} expired and no refresh token is stored; re-authorize"
            )

        log.info("Refreshing %s access token for user %s", self._provider, token.user_id)
        grant = await self._oauth.refresh(token.refresh_token)

        async with self._session_factory() as db:
            # save_token keeps the stored refresh token when the grant has none
            await save_token(
                db,
                token.user_id,
                grant.access_token,
                refresh_token=grant.refresh_token,
                expires_at=self._clock() + timedelta(seconds=grant.expires_in),
                provider=self._provider,
            )
        return grant.access_token
