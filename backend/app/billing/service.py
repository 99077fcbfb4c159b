"""Core service coordinating billing transactions and credit issuance."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol, Tuple
from uuid import uuid4

from .catalog import ProductCatalog
from .exceptions import DuplicateCreditError, InvalidTransactionStateError
from .ledger import CreditLedger
from .models import (
    ADMIN_GRANT_PROVIDER,
    BillingAuditEvent,
    BillingAuditEventType,
    Credit,
    SettlementResult,
    Transaction,
    TransactionStatus,
)


logger = logging.getLogger("billing")


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


class TransactionRepository(Protocol):
    """Persistence operations for billing transactions."""

    def create_transaction(self, transaction: Transaction) -> Transaction:
        ...

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ...

    def transition_transaction(
        self,
        transaction_id: str,
        *,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
        provider_payment_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        """Move a transaction between statuses, or return ``None`` if it is not in ``from_status``."""


@dataclass
class BillingService:
    """Creates purchase transactions and turns completed ones into credits."""

    repository: TransactionRepository
    catalog: ProductCatalog
    ledger: CreditLedger
    event_logger: BillingEventLogger
    default_provider: str = "kaspi"

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def create_credit_purchase(
        self,
        *,
        user_id: str,
        product_code: str,
        provider: Optional[str] = None,
    ) -> Transaction:
        product = self.catalog.get_product(product_code)
        if not product.is_active:
            raise ValueError(f"Product {product_code} is not available for purchase")

        now = self._now()
        transaction = self.repository.create_transaction(
            Transaction(
                id=str(uuid4()),
                user_id=user_id,
                product_code=product.code,
                amount=product.price,
                currency_code=product.currency_code,
                status=TransactionStatus.PENDING,
                provider=provider or self.default_provider,
                created_at=now,
                updated_at=now,
            )
        )
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.TRANSACTION_CREATED,
                user_id=user_id,
                actor_id=user_id,
                transaction_id=transaction.id,
                metadata={"product_code": product.code, "amount": str(product.price)},
            )
        )
        return transaction

    def get_user_transaction(self, transaction_id: str, *, user_id: str) -> Transaction:
        """Return a transaction owned by ``user_id``.

        Unknown ids and transactions of other users both raise ``LookupError``.
        """

        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            raise LookupError("Transaction not found")
        return transaction

    def complete_transaction(
        self,
        transaction_id: str,
        *,
        provider_payment_id: Optional[str] = None,
    ) -> SettlementResult:
        """Mark a pending transaction completed and issue its credit.

        Completing an already completed transaction returns the credit that
        was issued the first time.
        """

        transaction = self.repository.get_transaction(transaction_id)
        if transaction is None:
            raise LookupError("Transaction not found")

        if transaction.status == TransactionStatus.PENDING:
            updated = self.repository.transition_transaction(
                transaction_id,
                from_status=TransactionStatus.PENDING,
                to_status=TransactionStatus.COMPLETED,
                provider_payment_id=provider_payment_id,
            )
            if updated is None:
                # Lost a race with another settlement; re-read the winner's result.
                updated = self.repository.get_transaction(transaction_id)
            if updated is None:
                raise LookupError("Transaction not found")
            transaction = updated
            if transaction.status == TransactionStatus.COMPLETED:
                self.event_logger.log(
                    BillingAuditEvent(
                        event_type=BillingAuditEventType.TRANSACTION_COMPLETED,
                        user_id=transaction.user_id,
                        transaction_id=transaction.id,
                        metadata={"provider": transaction.provider},
                    )
                )

        if transaction.status != TransactionStatus.COMPLETED:
            raise InvalidTransactionStateError(
                f"Transaction {transaction_id} is {transaction.status.value} and cannot be completed"
            )

        credit, created = self._issue_once(transaction)
        return SettlementResult(transaction=transaction, credit=credit, already_settled=not created)

    def fail_transaction(self, transaction_id: str) -> Transaction:
        updated = self.repository.transition_transaction(
            transaction_id,
            from_status=TransactionStatus.PENDING,
            to_status=TransactionStatus.FAILED,
        )
        if updated is not None:
            self.event_logger.log(
                BillingAuditEvent(
                    event_type=BillingAuditEventType.TRANSACTION_FAILED,
                    user_id=updated.user_id,
                    transaction_id=updated.id,
                )
            )
            return updated

        existing = self.repository.get_transaction(transaction_id)
        if existing is None:
            raise LookupError("Transaction not found")
        if existing.status == TransactionStatus.FAILED:
            return existing
        raise InvalidTransactionStateError(
            f"Transaction {transaction_id} is {existing.status.value} and cannot fail"
        )

    def grant_credit(
        self,
        *,
        admin_id: str,
        user_id: str,
        credit_code: str,
        reason: str,
    ) -> SettlementResult:
        """Issue a credit without payment, backed by a zero-amount transaction."""

        if not reason or not reason.strip():
            raise ValueError("A reason is required to grant a credit")

        product = self.catalog.get_product(credit_code)
        now = self._now()
        transaction = self.repository.create_transaction(
            Transaction(
                id=str(uuid4()),
                user_id=user_id,
                product_code=product.code,
                amount=0,
                currency_code=product.currency_code,
                status=TransactionStatus.COMPLETED,
                provider=ADMIN_GRANT_PROVIDER,
                metadata={"granted_by": admin_id, "reason": reason.strip()},
                created_at=now,
                updated_at=now,
            )
        )
        credit = self.ledger.issue(user_id, product.code, transaction.id)
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CREDIT_GRANTED,
                user_id=user_id,
                actor_id=admin_id,
                transaction_id=transaction.id,
                credit_id=credit.id,
                metadata={"credit_code": product.code, "reason": reason.strip()},
            )
        )
        return SettlementResult(transaction=transaction, credit=credit)

    def _issue_once(self, transaction: Transaction) -> Tuple[Credit, bool]:
        existing = self.ledger.get_by_transaction(transaction.id)
        if existing is not None:
            return existing, False

        try:
            credit = self.ledger.issue(transaction.user_id, transaction.product_code, transaction.id)
        except DuplicateCreditError:
            logger.info("Credit for transaction %s was issued concurrently", transaction.id)
            existing = self.ledger.get_by_transaction(transaction.id)
            if existing is None:
                raise
            return existing, False

        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CREDIT_ISSUED,
                user_id=transaction.user_id,
                transaction_id=transaction.id,
                credit_id=credit.id,
                metadata={"credit_code": credit.credit_code},
            )
        )
        return credit, True


__all__ = ["BillingEventLogger", "BillingService", "TransactionRepository"]
