# tests/conftest.py
import asyncio
import os
from datetime import timedelta
from typing import List, Optional

# Required settings must exist before reviewdesk.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("DB_ENCRYPTION_KEY", "t3st-Key_for-encrypting+oauth.tokens!9")

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from reviewdesk.db import init_db, make_session_factory
from reviewdesk.google.token_manager import TokenManager
from reviewdesk.google.tokens import save_token
from reviewdesk.models import TokenGrant, Workspace
from reviewdesk.utils.common import utcnow


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reviewdesk.db'}")

    # Let SQLite take the write lock at BEGIN so concurrent sessions queue up
    # on busy_timeout instead of failing with "database is locked" on upgrade.
    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


class FakeOAuthClient:
    """Scriptable stand-in for GoogleOAuthClient.refresh / exchange_code."""

    def __init__(self, grant: Optional[TokenGrant] = None, error: Optional[Exception] = None,
                 delay: float = 0.0):
        self.grant = grant or TokenGrant(access_token="refreshed-access", expires_in=3600)
        self.error = error
        self.delay = delay
        self.refresh_calls: List[str] = []
        self.exchanged: List[str] = []

    async def refresh(self, refresh_token: str) -> TokenGrant:
        self.refresh_calls.append(refresh_token)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.grant

    async def exchange_code(self, code: str) -> TokenGrant:
        self.exchanged.append(code)
        return self.grant

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/auth?state={state}"

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_oauth():
    return FakeOAuthClient()


@pytest.fixture
def token_manager(session_factory, fake_oauth):
    return TokenManager(session_factory, fake_oauth)


@pytest.fixture
def store_token(session_factory):
    async def _store(user_id: str, access_token: str = "stored-access",
                     refresh_token: Optional[str] = "stored-refresh",
                     expires_in: Optional[timedelta] = timedelta(hours=1)):
        expires_at = utcnow() + expires_in if expires_in is not None else None
        async with session_factory() as db:
            await save_token(db, user_id, access_token, refresh_token=refresh_token, expires_at=expires_at)
    return _store


@pytest.fixture
def add_workspace(session_factory):
    async def _add(owner_id: str, location_id: str, name: str) -> Workspace:
        async with session_factory() as db:
            ws = Workspace(owner_id=owner_id, google_location_id=location_id, name=name)
            db.add(ws)
            await db.commit()
            return ws
    return _add
