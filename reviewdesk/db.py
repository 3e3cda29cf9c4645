# reviewdesk/db.py
from functools import lru_cache
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import settings

# Declarative base for all ORM models
Base = declarative_base()


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """
    Async engine for settings.DATABASE_URL (created on first use).
    """
    return create_async_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Ensure oauth_tokens / workspaces / reviews tables exist.
    """
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session_factory(request: Request) -> async_sessionmaker:
    """
    FastAPI dependency: the session factory built in the app lifespan.
    Fan-out work opens one session per task from it.
    """
    return request.app.state.session_factory


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency: yields an AsyncSession and closes it after use.
    """
    async with get_session_factory(request)() as db:
        yield db


# ──────────────────────────────────────────────────────────────────────────────
#                  Dialect-aware INSERT ... ON CONFLICT
# ──────────────────────────────────────────────────────────────────────────────
_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_stmt(db: AsyncSession, table: Table):
    """
    Return an INSERT construct for `table` that supports on_conflict_do_update()
    and .excluded on the session's dialect (Postgres in prod, SQLite in tests).
    """
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect](table)
    except KeyError:
        raise RuntimeError(f"Upserts are not supported on dialect {dialect!r}")
