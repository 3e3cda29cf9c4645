# reviewdesk/google/oauth_state.py
from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Tuple

from reviewdesk.errors import ValidationError
from reviewdesk.utils.common import utcnow


class OAuthStateStore:
    """
    Single-use `state` values for the consent round trip.

    /start issues a random state bound to the caller; /callback consumes it
    and gets the user id back. Unknown, reused or expired states are rejected,
    so a callback can only write the credential of the user who started it.
    In-memory: a restart invalidates consents in flight.
    """

    def __init__(self, ttl: timedelta = timedelta(minutes=10),
                 clock: Callable[[], datetime] = utcnow):
        self._ttl = ttl
        self._clock = clock
        self._pending: Dict[str, Tuple[str, datetime]] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def issue(self, user_id: str) -> str:
        self._purge()
        state = secrets.token_urlsafe(32)
        self._pending[state] = (user_id, self._clock() + self._ttl)
        return state

    def consume(self, state: str) -> str:
        self._purge()
        entry = self._pending.pop(state, None)
        if entry is None:
            raise ValidationError("Unknown or expired OAuth state; start the authorization again")
        return entry[0]

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._pending.items() if now >= expires_at]:
            del self._pending[key]
