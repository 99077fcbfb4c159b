"""In-memory collaborators shared by the billing and publishing tests."""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from backend.app.billing import (
    BillingAuditEvent,
    BillingEventLogger,
    Credit,
    CreditRepository,
    CreditStatus,
    DuplicateCreditError,
    Product,
    ProductRepository,
    Transaction,
    TransactionRepository,
    TransactionStatus,
)
from backend.app.entitlements import ClubSubscription, MembershipRole
from backend.app.events import EventDraft, EventRecord, EventStore
from backend.app.feature_gates import ClubService
from backend.app.idempotency import IdempotencyRecord, IdempotencyRepository, IdempotencyStatus


def make_upgrade_product(**overrides: Any) -> Product:
    data: Dict[str, Any] = {
        "code": "EVENT_UPGRADE_500",
        "title": "Event upgrade up to 500 participants",
        "price": 1000,
        "currency_code": "kzt",
        "constraints": {"max_participants": 500},
    }
    data.update(overrides)
    return Product(**data)


class InMemoryBillingRepository(ProductRepository, TransactionRepository, CreditRepository):
    def __init__(self, products: Sequence[Product] = ()) -> None:
        self.products: Dict[str, Product] = {product.code: product for product in products}
        self.transactions: Dict[str, Transaction] = {}
        self.credits: Dict[str, Credit] = {}
        self.list_products_calls = 0
        self.credit_reads = 0
        self._lock = threading.Lock()

    # Products

    def list_products(self) -> Sequence[Product]:
        self.list_products_calls += 1
        return list(self.products.values())

    # Transactions

    def create_transaction(self, transaction: Transaction) -> Transaction:
        self.transactions[transaction.id] = transaction
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.transactions.get(transaction_id)

    def transition_transaction(
        self,
        transaction_id: str,
        *,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
        provider_payment_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        with self._lock:
            transaction = self.transactions.get(transaction_id)
            if transaction is None or transaction.status != from_status:
                return None
            updated = transaction.model_copy(
                update={
                    "status": to_status,
                    "provider_payment_id": provider_payment_id or transaction.provider_payment_id,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self.transactions[transaction_id] = updated
            return updated

    # Credits

    def add_available_credit(self, user_id: str, credit_code: str = "EVENT_UPGRADE_500") -> Credit:
        credit = Credit(
            id=str(uuid4()),
            user_id=user_id,
            credit_code=credit_code,
            source_transaction_id=str(uuid4()),
        )
        self.credits[credit.id] = credit
        return credit

    def insert_credit(self, credit: Credit) -> Credit:
        with self._lock:
            if any(existing.source_transaction_id == credit.source_transaction_id for existing in self.credits.values()):
                raise DuplicateCreditError(credit.source_transaction_id)
            self.credits[credit.id] = credit
            return credit

    def get_credit_by_transaction(self, source_transaction_id: str) -> Optional[Credit]:
        self.credit_reads += 1
        return next(
            (credit for credit in self.credits.values() if credit.source_transaction_id == source_transaction_id),
            None,
        )

    def _available(self, user_id: str, credit_code: str) -> List[Credit]:
        return [
            credit
            for credit in self.credits.values()
            if credit.user_id == user_id and credit.credit_code == credit_code and credit.status == CreditStatus.AVAILABLE
        ]

    def list_available_credits(self, user_id: str, credit_code: str) -> Sequence[Credit]:
        self.credit_reads += 1
        return self._available(user_id, credit_code)

    def has_available_credit(self, user_id: str, credit_code: str) -> bool:
        self.credit_reads += 1
        return bool(self._available(user_id, credit_code))

    def claim_available_credit(
        self,
        *,
        user_id: str,
        credit_code: str,
        resource_id: str,
        consumed_at: datetime,
    ) -> Optional[Credit]:
        with self._lock:
            already_bound = any(
                credit.consumed_resource_id == resource_id and credit.credit_code == credit_code
                for credit in self.credits.values()
            )
            candidates = self._available(user_id, credit_code)
            if already_bound or not candidates:
                return None
            credit = min(candidates, key=lambda item: item.created_at)
            claimed = credit.model_copy(
                update={
                    "status": CreditStatus.CONSUMED,
                    "consumed_resource_id": resource_id,
                    "consumed_at": consumed_at,
                    "updated_at": consumed_at,
                }
            )
            self.credits[credit.id] = claimed
            return claimed

    def list_credits_for_resource(
        self,
        resource_id: str,
        credit_code: Optional[str] = None,
    ) -> Sequence[Credit]:
        self.credit_reads += 1
        return [
            credit
            for credit in self.credits.values()
            if credit.consumed_resource_id == resource_id
            and (credit_code is None or credit.credit_code == credit_code)
        ]


class InMemoryClubDirectory(ClubService):
    def __init__(self) -> None:
        self.subscriptions: Dict[str, ClubSubscription] = {}
        self.roles: Dict[Tuple[str, str], MembershipRole] = {}

    def get_club_subscription(self, club_id: str) -> Optional[ClubSubscription]:
        return self.subscriptions.get(club_id)

    def get_member_role(self, club_id: str, user_id: str) -> Optional[MembershipRole]:
        return self.roles.get((club_id, user_id))


class InMemoryEventStore(EventStore):
    def __init__(self) -> None:
        self.events: Dict[str, EventRecord] = {}
        self.deleted: List[str] = []
        self.fail_delete = False
        self._counter = 0

    def create_event(self, owner_id: str, draft: EventDraft) -> EventRecord:
        self._counter += 1
        record = EventRecord(id=f"event-{self._counter}", owner_id=owner_id, **draft.model_dump())
        self.events[record.id] = record
        return record

    def update_event(self, event_id: str, draft: EventDraft) -> EventRecord:
        existing = self.events.get(event_id)
        if existing is None:
            raise LookupError("Event not found")
        updated = existing.model_copy(update={**draft.model_dump(), "updated_at": datetime.now(timezone.utc)})
        self.events[event_id] = updated
        return updated

    def delete_event(self, event_id: str) -> None:
        if self.fail_delete:
            raise RuntimeError("event store unavailable")
        self.events.pop(event_id, None)
        self.deleted.append(event_id)

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self.events.get(event_id)


class InMemoryIdempotencyRepository(IdempotencyRepository):
    def __init__(self) -> None:
        self.records: Dict[Tuple[str, str, str], IdempotencyRecord] = {}

    def get_record(self, user_id: str, route: str, key: str) -> Optional[IdempotencyRecord]:
        return self.records.get((user_id, route, key))

    def try_create(self, user_id: str, route: str, key: str) -> bool:
        if (user_id, route, key) in self.records:
            return False
        self.records[(user_id, route, key)] = IdempotencyRecord(
            user_id=user_id,
            route=route,
            key=key,
            status=IdempotencyStatus.IN_PROGRESS,
        )
        return True

    def reclaim(self, user_id: str, route: str, key: str, *, stale_before: datetime) -> bool:
        record = self.records.get((user_id, route, key))
        if record is None:
            return False
        stale = record.status == IdempotencyStatus.IN_PROGRESS and record.updated_at <= stale_before
        if record.status != IdempotencyStatus.FAILED and not stale:
            return False
        self.records[(user_id, route, key)] = record.model_copy(
            update={
                "status": IdempotencyStatus.IN_PROGRESS,
                "response_status": None,
                "response_body": None,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        return True

    def mark_completed(self, user_id: str, route: str, key: str, *, status_code: int, body: Any) -> None:
        record = self.records[(user_id, route, key)]
        self.records[(user_id, route, key)] = record.model_copy(
            update={
                "status": IdempotencyStatus.COMPLETED,
                "response_status": status_code,
                "response_body": body,
                "updated_at": datetime.now(timezone.utc),
            }
        )

    def mark_failed(self, user_id: str, route: str, key: str) -> None:
        record = self.records[(user_id, route, key)]
        self.records[(user_id, route, key)] = record.model_copy(
            update={"status": IdempotencyStatus.FAILED, "updated_at": datetime.now(timezone.utc)}
        )


class RecordingEventLogger(BillingEventLogger):
    def __init__(self) -> None:
        self.events: List[BillingAuditEvent] = []

    def log(self, event: BillingAuditEvent) -> None:
        self.events.append(event)
