"""Unit tests for purchase, settlement and admin grants."""
from __future__ import annotations

from typing import Tuple

import pytest

from backend.app.billing import (
    ADMIN_GRANT_PROVIDER,
    BillingAuditEventType,
    BillingService,
    CreditStatus,
    InvalidTransactionStateError,
    ProductNotFoundError,
    TransactionStatus,
)
from backend.tests.fakes import InMemoryBillingRepository, RecordingEventLogger, make_upgrade_product


Components = Tuple[BillingService, InMemoryBillingRepository, RecordingEventLogger]


def test_purchase_creates_pending_transaction_at_catalog_price(billing_components: Components) -> None:
    service, repository, event_logger = billing_components

    transaction = service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")

    assert transaction.status == TransactionStatus.PENDING
    assert transaction.amount == 1000
    assert transaction.currency_code == "KZT"
    assert transaction.provider == "kaspi"
    assert repository.transactions[transaction.id] == transaction
    assert not repository.credits
    assert event_logger.events[-1].event_type == BillingAuditEventType.TRANSACTION_CREATED


def test_purchase_of_unknown_or_inactive_product_is_rejected(billing_components: Components) -> None:
    service, repository, _ = billing_components

    with pytest.raises(ProductNotFoundError):
        service.create_credit_purchase(user_id="user-1", product_code="UNKNOWN")

    repository.products["EVENT_UPGRADE_500"] = make_upgrade_product(is_active=False)
    with pytest.raises(ValueError):
        service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")


def test_completing_transaction_issues_exactly_one_credit(billing_components: Components) -> None:
    service, repository, event_logger = billing_components
    transaction = service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")

    first = service.complete_transaction(transaction.id, provider_payment_id="kaspi-123")
    second = service.complete_transaction(transaction.id)

    assert first.transaction.status == TransactionStatus.COMPLETED
    assert first.transaction.provider_payment_id == "kaspi-123"
    assert first.credit.status == CreditStatus.AVAILABLE
    assert first.credit.source_transaction_id == transaction.id
    assert first.already_settled is False
    assert second.already_settled is True
    assert second.credit.id == first.credit.id
    assert len(repository.credits) == 1
    event_types = [event.event_type for event in event_logger.events]
    assert event_types.count(BillingAuditEventType.CREDIT_ISSUED) == 1
    assert event_types.count(BillingAuditEventType.TRANSACTION_COMPLETED) == 1


def test_completing_unknown_transaction_raises_lookup(billing_components: Components) -> None:
    service, _, _ = billing_components

    with pytest.raises(LookupError):
        service.complete_transaction("missing")


def test_failed_transaction_cannot_be_completed(billing_components: Components) -> None:
    service, repository, event_logger = billing_components
    transaction = service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")

    failed = service.fail_transaction(transaction.id)
    assert failed.status == TransactionStatus.FAILED
    assert service.fail_transaction(transaction.id).status == TransactionStatus.FAILED

    with pytest.raises(InvalidTransactionStateError):
        service.complete_transaction(transaction.id)
    assert not repository.credits
    assert event_logger.events[-1].event_type == BillingAuditEventType.TRANSACTION_FAILED


def test_completed_transaction_cannot_fail(billing_components: Components) -> None:
    service, _, _ = billing_components
    transaction = service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")
    service.complete_transaction(transaction.id)

    with pytest.raises(InvalidTransactionStateError):
        service.fail_transaction(transaction.id)


def test_completion_recovers_credit_issued_concurrently(billing_components: Components) -> None:
    service, repository, _ = billing_components
    transaction = service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")
    service.complete_transaction(transaction.id)
    existing = next(iter(repository.credits.values()))

    original_lookup = repository.get_credit_by_transaction
    calls = {"count": 0}

    def stale_then_fresh(source_transaction_id: str):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return original_lookup(source_transaction_id)

    repository.get_credit_by_transaction = stale_then_fresh  # type: ignore[assignment]

    result = service.complete_transaction(transaction.id)

    assert result.already_settled is True
    assert result.credit.id == existing.id
    assert len(repository.credits) == 1


def test_admin_grant_requires_reason(billing_components: Components) -> None:
    service, repository, _ = billing_components

    for reason in ("", "   "):
        with pytest.raises(ValueError):
            service.grant_credit(admin_id="admin-1", user_id="user-1", credit_code="EVENT_UPGRADE_500", reason=reason)

    assert not repository.transactions
    assert not repository.credits


def test_admin_grant_issues_credit_with_zero_amount_transaction(billing_components: Components) -> None:
    service, repository, event_logger = billing_components

    result = service.grant_credit(
        admin_id="admin-1",
        user_id="user-1",
        credit_code="EVENT_UPGRADE_500",
        reason=" support goodwill ",
    )

    assert result.transaction.amount == 0
    assert result.transaction.status == TransactionStatus.COMPLETED
    assert result.transaction.provider == ADMIN_GRANT_PROVIDER
    assert result.transaction.metadata == {"granted_by": "admin-1", "reason": "support goodwill"}
    assert result.credit.source_transaction_id == result.transaction.id
    assert result.credit.user_id == "user-1"
    granted = event_logger.events[-1]
    assert granted.event_type == BillingAuditEventType.CREDIT_GRANTED
    assert granted.actor_id == "admin-1"
    assert granted.metadata["reason"] == "support goodwill"


def test_user_transaction_lookup_is_scoped_to_owner(billing_components: Components) -> None:
    service, _, _ = billing_components
    transaction = service.create_credit_purchase(user_id="user-1", product_code="EVENT_UPGRADE_500")

    assert service.get_user_transaction(transaction.id, user_id="user-1") == transaction
    with pytest.raises(LookupError):
        service.get_user_transaction(transaction.id, user_id="user-2")
    with pytest.raises(LookupError):
        service.get_user_transaction("missing", user_id="user-1")
