"""Credit ledger: issuance, availability and exactly-once consumption."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence
from uuid import uuid4

from .catalog import ProductCatalog
from .exceptions import ConsumptionPreconditionError, PaywallError, PaywallReason
from .models import Credit, CreditStatus, OneOffCreditOption


logger = logging.getLogger("billing")


class CreditRepository(Protocol):
    """Persistence operations required by the credit ledger.

    ``claim_available_credit`` must flip at most one available credit to
    consumed in a single atomic step and return it, or return ``None`` when
    no available credit could be claimed. A resource is bound to at most one
    credit per code: the claim returns ``None`` when ``resource_id`` already
    carries a consumed credit of ``credit_code``.
    """

    def insert_credit(self, credit: Credit) -> Credit:
        ...

    def get_credit_by_transaction(self, source_transaction_id: str) -> Optional[Credit]:
        ...

    def list_available_credits(self, user_id: str, credit_code: str) -> Sequence[Credit]:
        ...

    def has_available_credit(self, user_id: str, credit_code: str) -> bool:
        ...

    def claim_available_credit(
        self,
        *,
        user_id: str,
        credit_code: str,
        resource_id: str,
        consumed_at: datetime,
    ) -> Optional[Credit]:
        ...

    def list_credits_for_resource(
        self,
        resource_id: str,
        credit_code: Optional[str] = None,
    ) -> Sequence[Credit]:
        ...


class CreditLedger:
    """Issues credits from completed transactions and consumes them once."""

    def __init__(
        self,
        repository: CreditRepository,
        *,
        catalog: Optional[ProductCatalog] = None,
        payment_provider: str = "kaspi",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._payment_provider = payment_provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def issue(self, user_id: str, credit_code: str, source_transaction_id: str) -> Credit:
        """Create an available credit backed by ``source_transaction_id``.

        Raises :class:`DuplicateCreditError` when the transaction already
        backs a credit.
        """

        now = self._clock()
        credit = Credit(
            id=str(uuid4()),
            user_id=user_id,
            credit_code=credit_code,
            source_transaction_id=source_transaction_id,
            status=CreditStatus.AVAILABLE,
            created_at=now,
            updated_at=now,
        )
        stored = self._repository.insert_credit(credit)
        logger.info(
            "Issued credit %s code=%s user=%s transaction=%s",
            stored.id,
            credit_code,
            user_id,
            source_transaction_id,
        )
        return stored

    def has_available(self, user_id: str, credit_code: str) -> bool:
        return self._repository.has_available_credit(user_id, credit_code)

    def list_available(self, user_id: str, credit_code: str) -> List[Credit]:
        credits = self._repository.list_available_credits(user_id, credit_code)
        return sorted(credits, key=lambda credit: credit.created_at)

    def get_by_transaction(self, source_transaction_id: str) -> Optional[Credit]:
        return self._repository.get_credit_by_transaction(source_transaction_id)

    def consumed_for_resource(
        self,
        resource_id: str,
        credit_code: Optional[str] = None,
    ) -> List[Credit]:
        credits = self._repository.list_credits_for_resource(resource_id, credit_code)
        return [credit for credit in credits if credit.status == CreditStatus.CONSUMED]

    def consume(self, user_id: str, credit_code: str, resource_id: Optional[str]) -> Credit:
        """Atomically bind the oldest available credit to ``resource_id``.

        A resource that already carries a credit of ``credit_code`` keeps it
        and the bound credit is returned; a second credit is never spent.
        """

        if not resource_id:
            raise ConsumptionPreconditionError("resource_id is required to consume a credit")

        credit = self._repository.claim_available_credit(
            user_id=user_id,
            credit_code=credit_code,
            resource_id=resource_id,
            consumed_at=self._clock(),
        )
        if credit is None:
            bound = self.consumed_for_resource(resource_id, credit_code)
            if bound:
                logger.info(
                    "Resource %s already carries credit %s code=%s; nothing consumed",
                    resource_id,
                    bound[0].id,
                    credit_code,
                )
                return bound[0]

            logger.warning(
                "No available credit to consume code=%s user=%s resource=%s",
                credit_code,
                user_id,
                resource_id,
            )
            raise PaywallError(
                reason=PaywallReason.NO_CREDIT_AVAILABLE,
                message="No available credit to consume",
                options=self._purchase_options(credit_code),
                meta={"creditCode": credit_code},
            )

        logger.info(
            "Consumed credit %s code=%s user=%s resource=%s",
            credit.id,
            credit_code,
            user_id,
            resource_id,
        )
        return credit

    def _purchase_options(self, credit_code: str) -> List[OneOffCreditOption]:
        if self._catalog is None:
            return []
        product = self._catalog.find_product(credit_code)
        if product is None or not product.is_active:
            return []
        return [
            OneOffCreditOption(
                product_code=product.code,
                price=product.price,
                currency_code=product.currency_code,
                provider=self._payment_provider,
            )
        ]


__all__ = ["CreditLedger", "CreditRepository"]
