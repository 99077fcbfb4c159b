"""Event fields the publishing flow reads and writes."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EventDraft(BaseModel):
    """Editable fields of an event as submitted by its organizer."""

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    club_id: Optional[str] = None
    max_participants: Optional[int] = Field(default=None, ge=1)
    is_paid: bool = False
    starts_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class EventRecord(BaseModel):
    """Persisted event."""

    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    club_id: Optional[str] = None
    max_participants: Optional[int] = None
    is_paid: bool = False
    starts_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title,
            description=self.description,
            club_id=self.club_id,
            max_participants=self.max_participants,
            is_paid=self.is_paid,
            starts_at=self.starts_at,
        )
