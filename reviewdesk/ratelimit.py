# reviewdesk/ratelimit.py
"""
In-process fixed-window rate limiting.

Counters live in this process's memory only: with several app instances the
effective limit is per instance, not global.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict

from fastapi import Depends, Header, Request

from reviewdesk.config import settings
from reviewdesk.errors import RateLimitedError, ValidationError
from reviewdesk.utils.common import utcnow

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    window: timedelta
    max_requests: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


@dataclass
class _Window:
    count: int
    reset_at: datetime


_WINDOW = timedelta(seconds=settings.RATE_LIMIT_WINDOW_SECONDS)

# Ordinary API calls
DEFAULT_POLICY = RateLimitPolicy("default", _WINDOW, settings.RATE_LIMIT_DEFAULT_MAX)
# Calls that spend money per request (AI analysis)
AI_ANALYSIS_POLICY = RateLimitPolicy("ai_analysis", _WINDOW, settings.RATE_LIMIT_AI_MAX)


class RateLimiter:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        """
        Count one request for `identifier` under `policy`.
        No awaits in here, so the read-modify-write is atomic on the event loop.
        """
        now = self._clock()
        window = self._windows.get(identifier)

        if window is None or now >= window.reset_at:
            window = _Window(count=1, reset_at=now + policy.window)
            self._windows[identifier] = window
            return RateLimitResult(True, policy.max_requests - 1, window.reset_at)

        window.count += 1
        if window.count > policy.max_requests:
            return RateLimitResult(False, 0, window.reset_at)
        return RateLimitResult(True, policy.max_requests - window.count, window.reset_at)

    def sweep(self) -> int:
        """Drop expired windows. Returns how many were purged."""
        now = self._clock()
        expired = [key for key, w in self._windows.items() if now >= w.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep forever on a fixed interval; cancel the task to stop it."""
        while True:
            await asyncio.sleep(interval_seconds)
            purged = self.sweep()
            if purged:
                log.debug("Rate limiter swept %d expired windows (%d live)", purged, len(self))


# ─── FastAPI dependencies ─────────────────────────────────────────────────────
def get_current_user_id(x_user_id: str = Header(default="")) -> str:
    """
    Caller identity. Session auth sits in front of this service and
    forwards the authenticated user id in X-User-Id.
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise ValidationError("X-User-Id header is required")
    return user_id


def rate_limited(policy: RateLimitPolicy = DEFAULT_POLICY):
    """
    Dependency factory: `Depends(rate_limited(AI_ANALYSIS_POLICY))`.
    Keys are namespaced per policy so the strict and default counters never share a window.
    """
    async def _check(request: Request, user_id: str = Depends(get_current_user_id)) -> RateLimitResult:
        limiter: RateLimiter = request.app.state.rate_limiter
        result = limiter.check(f"{policy.name}:{user_id}", policy)
        if not result.allowed:
            raise RateLimitedError(
                "Too many requests; wait and retry after the reset time",
                reset_at=result.reset_at,
            )
        return result

    return _check
