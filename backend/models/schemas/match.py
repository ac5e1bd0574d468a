"""Match records linking one parent, one tutor and one tutoring request."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from models.schemas.entities import Parent, Tutor


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    completed = "completed"
    cancelled = "cancelled"


class MatchRecord(BaseModel):
    """A proposed match and its outcome.

    ``tutor`` and ``parent`` are populated by the repository for training
    reads; either may be ``None`` when the referenced profile is gone.
    """
    match_id: str
    parent_id: str
    tutor_id: str
    request_id: str = ""
    status: MatchStatus = MatchStatus.pending
    parent_rating: float | None = Field(default=None, ge=1, le=5)
    parent_review: str | None = None
    tutor_rating: float | None = Field(default=None, ge=1, le=5)
    tutor_review: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    tutor: Tutor | None = None
    parent: Parent | None = None

    @property
    def is_rated(self) -> bool:
        return self.parent_rating is not None or self.tutor_rating is not None

    @property
    def is_successful(self) -> bool:
        """Completed with at least one side rating it 4 or higher."""
        if self.status != MatchStatus.completed:
            return False
        return any(r is not None and r >= 4 for r in (self.parent_rating, self.tutor_rating))
