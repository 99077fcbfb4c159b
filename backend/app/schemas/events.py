"""API schemas for event publishing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..events import EventDraft, EventRecord


class EventSaveRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    club_id: Optional[str] = Field(alias="clubId", default=None)
    max_participants: Optional[int] = Field(alias="maxParticipants", default=None, ge=1)
    is_paid: bool = Field(alias="isPaid", default=False)
    starts_at: Optional[datetime] = Field(alias="startsAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title,
            description=self.description,
            club_id=self.club_id,
            max_participants=self.max_participants,
            is_paid=self.is_paid,
            starts_at=self.starts_at,
        )


class EventResponse(BaseModel):
    id: str
    owner_id: str = Field(alias="ownerId")
    title: str
    description: Optional[str] = None
    club_id: Optional[str] = Field(alias="clubId", default=None)
    max_participants: Optional[int] = Field(alias="maxParticipants", default=None)
    is_paid: bool = Field(alias="isPaid", default=False)
    starts_at: Optional[datetime] = Field(alias="startsAt", default=None)
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_record(cls, record: EventRecord) -> "EventResponse":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            title=record.title,
            description=record.description,
            club_id=record.club_id,
            max_participants=record.max_participants,
            is_paid=record.is_paid,
            starts_at=record.starts_at,
            updated_at=record.updated_at,
        )
