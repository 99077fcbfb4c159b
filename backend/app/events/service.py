"""Saves events through the entitlement policy and the credit transaction."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from ..billing.ledger import CreditLedger
from ..billing.service import BillingEventLogger
from ..billing.transaction import with_credit_transaction
from ..entitlements.models import EventPublishRequest
from ..feature_gates.policy import EntitlementPolicy
from .models import EventDraft, EventRecord


logger = logging.getLogger(__name__)


class EventStore(Protocol):
    """Event persistence owned by the events subsystem."""

    def create_event(self, owner_id: str, draft: EventDraft) -> EventRecord:
        ...

    def update_event(self, event_id: str, draft: EventDraft) -> EventRecord:
        ...

    def delete_event(self, event_id: str) -> None:
        ...

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...


@dataclass
class EventPublishService:
    """Creates and updates events, spending a credit when the policy requires one."""

    policy: EntitlementPolicy
    ledger: CreditLedger
    store: EventStore
    event_logger: Optional[BillingEventLogger] = None

    def save_event(
        self,
        user_id: str,
        draft: EventDraft,
        *,
        event_id: Optional[str] = None,
        confirm_credit: bool = False,
    ) -> EventRecord:
        existing: Optional[EventRecord] = None
        if event_id is not None:
            existing = self.store.get_event(event_id)
            if existing is None:
                raise LookupError("Event not found")
            if existing.owner_id != user_id:
                raise PermissionError("Only the organizer can edit this event")

        decision = self.policy.enforce_event_publish(
            EventPublishRequest(
                user_id=user_id,
                club_id=draft.club_id,
                requested_participants=draft.max_participants,
                is_paid=draft.is_paid,
                resource_id=event_id,
            ),
            confirm_credit=confirm_credit,
        )

        if not decision.requires_credit:
            if existing is None:
                return self.store.create_event(user_id, draft)
            return self.store.update_event(existing.id, draft)

        credit_code = decision.credit_code or self.policy.credit_code
        if existing is None:
            return with_credit_transaction(
                self.ledger,
                user_id=user_id,
                credit_code=credit_code,
                operation=lambda: self.store.create_event(user_id, draft),
                compensate=self.store.delete_event,
                event_logger=self.event_logger,
            )

        previous = existing.to_draft()
        logger.info("Upgrading event %s with credit %s", existing.id, credit_code)
        return with_credit_transaction(
            self.ledger,
            user_id=user_id,
            credit_code=credit_code,
            operation=lambda: self.store.update_event(existing.id, draft),
            compensate=lambda resource_id: self._restore(resource_id, previous),
            event_logger=self.event_logger,
        )

    def _restore(self, event_id: str, previous: EventDraft) -> None:
        self.store.update_event(event_id, previous)


__all__ = ["EventPublishService", "EventStore"]
