# reviewdesk/errors.py
"""
Error taxonomy shared by the credential manager, the Business Profile client,
the sync engine and the rate limiter, plus the FastAPI handler that turns
them into HTTP responses.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from reviewdesk.utils.common import utcnow

log = logging.getLogger(__name__)


class ReviewDeskError(Exception):
    """Base class for every error raised by the sync core."""
    code = "error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code  # upstream HTTP status, when there is one
        super().__init__(message)


class NotAuthorizedError(ReviewDeskError):
    """No credential on file; the user has to connect their Google account."""
    code = "not_authorized"
    http_status = status.HTTP_401_UNAUTHORIZED


class AuthenticationError(ReviewDeskError):
    """Credential rejected or unrecoverable; the user has to re-authorize."""
    code = "authentication_failed"
    http_status = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ReviewDeskError):
    code = "forbidden"
    http_status = status.HTTP_403_FORBIDDEN


class NotFoundError(ReviewDeskError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class UpstreamError(ReviewDeskError):
    code = "upstream_error"
    http_status = status.HTTP_502_BAD_GATEWAY


class TransientUpstreamError(UpstreamError):
    """5xx, 429 or a network failure; safe to retry later."""
    code = "upstream_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class RefreshFailedError(ReviewDeskError):
    code = "refresh_failed"


class RefreshRejectedError(RefreshFailedError, AuthenticationError):
    """The identity provider refused the refresh token (revoked / invalid_grant)."""
    code = "refresh_rejected"
    http_status = status.HTTP_401_UNAUTHORIZED


class RefreshUnavailableError(RefreshFailedError, TransientUpstreamError):
    """The identity provider could not be reached or answered 5xx."""
    code = "refresh_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class ValidationError(ReviewDeskError):
    code = "validation_error"
    http_status = status.HTTP_400_BAD_REQUEST


class RateLimitedError(ReviewDeskError):
    code = "rate_limited"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, *, reset_at: datetime):
        self.reset_at = reset_at
        super().__init__(message)

    def retry_after_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        return max(0, math.ceil((self.reset_at - now).total_seconds()))


class DatabaseError(ReviewDeskError):
    code = "database_error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


def classify_status(status_code: int, message: str) -> ReviewDeskError:
    """Map a non-2xx upstream status onto the taxonomy."""
    if status_code == 401:
        return AuthenticationError(message, status_code=status_code)
    if status_code == 403:
        return AuthorizationError(message, status_code=status_code)
    if status_code == 404:
        return NotFoundError(message, status_code=status_code)
    if status_code == 429 or status_code >= 500:
        return TransientUpstreamError(message, status_code=status_code)
    return UpstreamError(message, status_code=status_code)


# ─── FastAPI wiring ───────────────────────────────────────────────────────────
async def _handle_review_desk_error(request: Request, exc: ReviewDeskError) -> JSONResponse:
    if exc.http_status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        log.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)

    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after_seconds())
        headers["X-RateLimit-Reset"] = exc.reset_at.isoformat()

    return JSONResponse(
        status_code=exc.http_status,
        content={"ok": False, "error": exc.message, "code": exc.code},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReviewDeskError, _handle_review_desk_error)
