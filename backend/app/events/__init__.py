"""Event publishing backed by entitlement checks and credits."""

from .models import EventDraft, EventRecord
from .service import EventPublishService, EventStore

__all__ = ["EventDraft", "EventPublishService", "EventRecord", "EventStore"]
