"""Models for client-supplied idempotency keys."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


MAX_IDEMPOTENCY_KEY_LENGTH = 255


class IdempotencyStatus(str, Enum):
    """Processing state of a request identified by an idempotency key."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class IdempotencyRecord(BaseModel):
    """Stored outcome for ``(user_id, route, key)``."""

    user_id: str
    route: str
    key: str
    status: IdempotencyStatus
    response_status: Optional[int] = None
    response_body: Any = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class IdempotentResponse:
    """Response produced by an idempotent operation, possibly replayed."""

    status_code: int
    body: Any
    replayed: bool = False
