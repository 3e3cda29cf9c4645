# reviewdesk/models.py
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import (
    JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
)

from reviewdesk.crypto import EncryptedText
from reviewdesk.db import Base
from reviewdesk.utils.common import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class ReviewStatus(str, enum.Enum):
    UNREPLIED = "unreplied"
    REPLIED = "replied"
    AUTO_REPLIED = "auto_replied"


class RiskLevel(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ─── ORM tables ───────────────────────────────────────────────────────────────
class OAuthToken(Base):
    __tablename__ = "oauth_tokens"
    user_id       = Column(String, primary_key=True)
    provider      = Column(String, primary_key=True, default="google")
    access_token  = Column(EncryptedText, nullable=False)
    refresh_token = Column(EncryptedText, nullable=True)
    expires_at    = Column(DateTime(timezone=True), nullable=True)
    created_at    = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at    = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Workspace(Base):
    __tablename__ = "workspaces"
    __table_args__ = (
        UniqueConstraint("owner_id", "google_location_id", name="uq_workspaces_owner_location"),
    )
    id                 = Column(String(36), primary_key=True, default=_uuid)
    owner_id           = Column(String, nullable=False, index=True)
    google_location_id = Column(String, nullable=False)
    name               = Column(String, nullable=False)
    address            = Column(String, nullable=True)
    created_at         = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at         = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )
    id                = Column(String(36), primary_key=True, default=_uuid)
    workspace_id      = Column(String(36), ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    google_review_id  = Column(String, nullable=False, unique=True)
    author_name       = Column(String, nullable=False)
    author_photo_url  = Column(String, nullable=True)
    rating            = Column(Integer, nullable=False)
    comment           = Column(Text, nullable=False, default="")
    review_created_at = Column(DateTime(timezone=True), nullable=True)
    reply_text        = Column(Text, nullable=True)
    reply_created_at  = Column(DateTime(timezone=True), nullable=True)
    status            = Column(String(16), nullable=False, default=ReviewStatus.UNREPLIED.value)

    # AI annotations: written by the analysis step only, never by sync
    risk           = Column(String(8), nullable=True)
    ai_summary     = Column(Text, nullable=True)
    ai_categories  = Column(JSON, nullable=True)
    ai_risk_reason = Column(Text, nullable=True)
    reply_draft    = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


# ─── Upstream shapes (Google Business Profile) ────────────────────────────────
@dataclass
class Location:
    location_id: str          # "accounts/123/locations/456"
    name: str
    address: str = ""
    place_id: Optional[str] = None


@dataclass
class ReviewReply:
    comment: str
    update_time: Optional[datetime] = None


@dataclass
class UpstreamReview:
    review_id: str            # "accounts/123/locations/456/reviews/789"
    reviewer_name: str
    star_rating: Optional[str]
    comment: str = ""
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    reviewer_photo_url: Optional[str] = None
    reply: Optional[ReviewReply] = None


@dataclass
class TokenGrant:
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"


# ─── Sync results ─────────────────────────────────────────────────────────────
@dataclass
class SyncWarning:
    workspace_name: str
    error: str


@dataclass
class ReviewSyncResult:
    total_reviews: int = 0
    synced_workspaces: int = 0
    warnings: List[SyncWarning] = field(default_factory=list)


@dataclass
class LocationSyncResult:
    synced_count: int
    locations: List[Location] = field(default_factory=list)


@dataclass
class ReviewAnalysis:
    summary: str
    risk: RiskLevel
    categories: List[str]
    risk_reason: str
    reply_draft: str


# ─── Request bodies ───────────────────────────────────────────────────────────
class ReplyInput(BaseModel):
    reply_text: str


class AnalysisInput(BaseModel):
    """Output of the external AI analysis step, stored as-is on the review."""
    summary: str
    risk: RiskLevel
    categories: List[str] = []
    risk_reason: str = ""
    reply_draft: str = ""

    def to_analysis(self) -> ReviewAnalysis:
        return ReviewAnalysis(
            summary=self.summary,
            risk=self.risk,
            categories=list(self.categories),
            risk_reason=self.risk_reason,
            reply_draft=self.reply_draft,
        )
