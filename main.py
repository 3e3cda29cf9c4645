# main.py
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from reviewdesk.config import settings
from reviewdesk.db import get_engine, init_db, make_session_factory
from reviewdesk.errors import register_error_handlers
from reviewdesk.google import build_business_client, build_oauth_client
from reviewdesk.google.oauth_state import OAuthStateStore
from reviewdesk.google.token_manager import TokenManager
from reviewdesk.ratelimit import RateLimiter

# Routers
from reviewdesk.google.oauth_routes import router as google_oauth_router
from reviewdesk.reviews.routes import router as reviews_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = get_engine()
    await init_db(engine)
    session_factory = make_session_factory(engine)

    oauth_client = build_oauth_client()
    business_client = build_business_client()
    rate_limiter = RateLimiter()

    app.state.session_factory = session_factory
    app.state.oauth_client = oauth_client
    app.state.business_client = business_client
    app.state.rate_limiter = rate_limiter
    app.state.oauth_states = OAuthStateStore(ttl=timedelta(seconds=settings.OAUTH_STATE_TTL_SECONDS))
    app.state.token_manager = TokenManager(
        session_factory,
        oauth_client,
        buffer=timedelta(seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS),
    )

    sweeper = asyncio.create_task(rate_limiter.run_sweeper(settings.RATE_LIMIT_SWEEP_SECONDS))
    log.info("reviewdesk started (mock data: %s)", settings.USE_MOCK_DATA)
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await business_client.aclose()
        await oauth_client.aclose()
        await engine.dispose()
        log.info("reviewdesk stopped")


app = FastAPI(title="reviewdesk", version="1.0.0", lifespan=lifespan)
register_error_handlers(app)


# Healthcheck
@app.get("/healthz")
def healthcheck():
    return {"ok": True}


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(google_oauth_router)
app.include_router(reviews_router)
