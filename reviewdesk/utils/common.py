# reviewdesk/utils/common.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil.parser import isoparse

# ─────────────────────────────
# Time & Date helpers
# ─────────────────────────────
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite hands back naive datetimes even for timezone=True columns;
    everything we store is UTC, so naive values are tagged as such.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_rfc3339(raw: Optional[str]) -> Optional[datetime]:
    """Google timestamps ("2024-05-01T10:00:00.123456789Z") -> aware datetime, or None."""
    if not raw:
        return None
    return ensure_utc(isoparse(raw))


# ─────────────────────────────
# Google Business Profile helpers
# ─────────────────────────────
STAR_RATINGS: Dict[str, int] = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}
# Google omits starRating on some legacy reviews; they are shown as 3 stars
DEFAULT_STAR_RATING = "THREE"


def format_address(address: Optional[Dict[str, Any]]) -> str:
    """
    Flatten a storefrontAddress into "line1, line2, locality, area, postal".
    """
    if not address:
        return ""
    parts = list(address.get("addressLines") or [])
    for key in ("locality", "administrativeArea", "postalCode"):
        if address.get(key):
            parts.append(address[key])
    return ", ".join(p for p in parts if p)
