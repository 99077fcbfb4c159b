from __future__ import annotations

import threading

import pytest

from backend.app.billing import (
    BillingAuditEventType,
    CreditConfirmationRequiredError,
    CreditLedger,
    PaywallError,
    PaywallReason,
)
from backend.app.entitlements import ClubSubscription, PlanKey, SubscriptionStatus
from backend.app.events import EventDraft, EventPublishService
from backend.app.feature_gates import EntitlementPolicy
from backend.tests.fakes import (
    InMemoryBillingRepository,
    InMemoryClubDirectory,
    InMemoryEventStore,
    RecordingEventLogger,
)

CODE = "EVENT_UPGRADE_500"


@pytest.fixture
def store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def event_logger() -> RecordingEventLogger:
    return RecordingEventLogger()


@pytest.fixture
def publisher(
    policy: EntitlementPolicy,
    ledger: CreditLedger,
    store: InMemoryEventStore,
    event_logger: RecordingEventLogger,
) -> EventPublishService:
    return EventPublishService(policy=policy, ledger=ledger, store=store, event_logger=event_logger)


def _draft(participants=None, **overrides) -> EventDraft:
    overrides.setdefault("title", "Board games night")
    return EventDraft(max_participants=participants, **overrides)


def test_small_event_is_saved_without_credit(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    billing_repository: InMemoryBillingRepository,
) -> None:
    record = publisher.save_event("user-1", _draft(10))

    assert store.events[record.id].owner_id == "user-1"
    assert billing_repository.credit_reads == 0


def test_upgrade_flow_confirms_then_consumes(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    ledger: CreditLedger,
    event_logger: RecordingEventLogger,
) -> None:
    ledger.issue("user-1", CODE, "tx-1")

    with pytest.raises(CreditConfirmationRequiredError):
        publisher.save_event("user-1", _draft(100))
    assert not store.events
    assert ledger.has_available("user-1", CODE) is True

    record = publisher.save_event("user-1", _draft(100), confirm_credit=True)

    assert record.id in store.events
    assert ledger.has_available("user-1", CODE) is False
    assert [credit.consumed_resource_id for credit in ledger.consumed_for_resource(record.id)] == [record.id]
    assert event_logger.events[-1].event_type == BillingAuditEventType.CREDIT_CONSUMED

    with pytest.raises(PaywallError) as exc:
        publisher.save_event("user-1", _draft(100), confirm_credit=True)
    assert exc.value.reason == PaywallReason.PUBLISH_REQUIRES_PAYMENT
    assert len(store.events) == 1


def test_resaving_upgraded_event_needs_no_new_credit(
    publisher: EventPublishService,
    ledger: CreditLedger,
    billing_repository: InMemoryBillingRepository,
) -> None:
    ledger.issue("user-1", CODE, "tx-1")
    record = publisher.save_event("user-1", _draft(200), confirm_credit=True)

    updated = publisher.save_event("user-1", _draft(300, title="Renamed"), event_id=record.id)

    assert updated.title == "Renamed"
    assert updated.max_participants == 300
    consumed = [credit for credit in billing_repository.credits.values() if not credit.is_available]
    assert len(consumed) == 1


def test_upgrading_existing_event_spends_credit(
    publisher: EventPublishService,
    ledger: CreditLedger,
) -> None:
    record = publisher.save_event("user-1", _draft(10))
    ledger.issue("user-1", CODE, "tx-1")

    updated = publisher.save_event("user-1", _draft(80), event_id=record.id, confirm_credit=True)

    assert updated.max_participants == 80
    assert ledger.consumed_for_resource(record.id)


def test_lost_credit_race_removes_created_event(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    billing_repository: InMemoryBillingRepository,
    ledger: CreditLedger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ledger.issue("user-1", CODE, "tx-1")
    original_create = store.create_event

    def create_then_lose_credit(owner_id, draft):
        record = original_create(owner_id, draft)
        # Another save spends the last credit between the check and the claim.
        ledger.consume("user-1", CODE, "event-elsewhere")
        return record

    monkeypatch.setattr(store, "create_event", create_then_lose_credit)

    with pytest.raises(PaywallError) as exc:
        publisher.save_event("user-1", _draft(100), confirm_credit=True)

    assert exc.value.reason == PaywallReason.NO_CREDIT_AVAILABLE
    assert store.deleted == ["event-1"]
    assert not store.events


def test_lost_credit_race_restores_previous_event(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    ledger: CreditLedger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    record = publisher.save_event("user-1", _draft(10, title="Original"))
    ledger.issue("user-1", CODE, "tx-1")
    original_update = store.update_event
    spent = {"done": False}

    def update_then_lose_credit(event_id, draft):
        updated = original_update(event_id, draft)
        if not spent["done"]:
            spent["done"] = True
            ledger.consume("user-1", CODE, "event-elsewhere")
        return updated

    monkeypatch.setattr(store, "update_event", update_then_lose_credit)

    with pytest.raises(PaywallError):
        publisher.save_event("user-1", _draft(100, title="Bigger"), event_id=record.id, confirm_credit=True)

    restored = store.events[record.id]
    assert restored.title == "Original"
    assert restored.max_participants == 10
    assert store.deleted == []


def test_failed_compensation_is_reported(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    ledger: CreditLedger,
    event_logger: RecordingEventLogger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ledger.issue("user-1", CODE, "tx-1")
    store.fail_delete = True
    original_create = store.create_event

    def create_then_lose_credit(owner_id, draft):
        record = original_create(owner_id, draft)
        ledger.consume("user-1", CODE, "event-elsewhere")
        return record

    monkeypatch.setattr(store, "create_event", create_then_lose_credit)

    with pytest.raises(PaywallError):
        publisher.save_event("user-1", _draft(100), confirm_credit=True)

    assert "event-1" in store.events
    assert event_logger.events[-1].event_type == BillingAuditEventType.CREDIT_COMPENSATION_FAILED


def test_club_event_uses_subscription(
    publisher: EventPublishService,
    clubs: InMemoryClubDirectory,
    billing_repository: InMemoryBillingRepository,
) -> None:
    clubs.subscriptions["club-1"] = ClubSubscription(
        club_id="club-1", plan_key=PlanKey.CLUB_500, status=SubscriptionStatus.ACTIVE
    )

    record = publisher.save_event("user-1", _draft(450, club_id="club-1"))

    assert record.club_id == "club-1"
    assert billing_repository.credit_reads == 0


def test_unknown_event_raises_lookup(publisher: EventPublishService) -> None:
    with pytest.raises(LookupError):
        publisher.save_event("user-1", _draft(10), event_id="missing")


def test_only_organizer_can_edit_personal_event(publisher: EventPublishService) -> None:
    record = publisher.save_event("user-1", _draft(10))

    with pytest.raises(PermissionError):
        publisher.save_event("user-2", _draft(12), event_id=record.id)


def test_stranger_cannot_edit_club_event(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    clubs: InMemoryClubDirectory,
    ledger: CreditLedger,
) -> None:
    clubs.subscriptions["club-1"] = ClubSubscription(
        club_id="club-1", plan_key=PlanKey.CLUB_50, status=SubscriptionStatus.ACTIVE
    )
    record = publisher.save_event("owner-1", _draft(20, club_id="club-1", title="Club night"))
    ledger.issue("stranger-9", CODE, "tx-1")

    with pytest.raises(PermissionError):
        publisher.save_event(
            "stranger-9",
            _draft(100, title="Hijacked"),
            event_id=record.id,
            confirm_credit=True,
        )

    unchanged = store.events[record.id]
    assert unchanged.title == "Club night"
    assert unchanged.club_id == "club-1"
    assert ledger.has_available("stranger-9", CODE) is True


def test_concurrent_confirmed_resaves_spend_one_credit(
    publisher: EventPublishService,
    store: InMemoryEventStore,
    ledger: CreditLedger,
    billing_repository: InMemoryBillingRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    record = publisher.save_event("user-1", _draft(10))
    ledger.issue("user-1", CODE, "tx-1")
    ledger.issue("user-1", CODE, "tx-2")
    barrier = threading.Barrier(2, timeout=5)
    original_update = store.update_event

    def update_together(event_id, draft):
        barrier.wait()
        return original_update(event_id, draft)

    monkeypatch.setattr(store, "update_event", update_together)
    errors = []

    def resave() -> None:
        try:
            publisher.save_event("user-1", _draft(100), event_id=record.id, confirm_credit=True)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=resave) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    consumed = [credit for credit in billing_repository.credits.values() if not credit.is_available]
    assert len(consumed) == 1
    assert consumed[0].consumed_resource_id == record.id
    assert len(ledger.list_available("user-1", CODE)) == 1
    assert store.events[record.id].max_participants == 100
