"""Application wiring for billing, entitlements and event publishing."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..billing import (
    BillingAuditEvent,
    BillingConfig,
    BillingEventLogger,
    BillingService,
    CreditLedger,
    ProductCatalog,
    load_billing_config,
)
from ..billing.repository import PostgresBillingRepository, PostgresClubDirectory
from ..events.repository import PostgresEventStore
from ..events.service import EventPublishService
from ..feature_gates.policy import EntitlementPolicy
from ..idempotency.repository import PostgresIdempotencyRepository
from ..idempotency.service import IdempotencyService


logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s user=%s actor=%s transaction=%s credit=%s resource=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.actor_id,
            event.transaction_id,
            event.credit_id,
            event.resource_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


@lru_cache(maxsize=1)
def get_billing_event_logger() -> BillingEventLogger:
    return LoggingBillingEventLogger()


@lru_cache(maxsize=1)
def get_product_catalog() -> ProductCatalog:
    config = get_billing_config()
    return ProductCatalog(PostgresBillingRepository(), ttl_seconds=config.product_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_credit_ledger() -> CreditLedger:
    config = get_billing_config()
    return CreditLedger(
        PostgresBillingRepository(),
        catalog=get_product_catalog(),
        payment_provider=config.default_provider,
    )


@lru_cache(maxsize=1)
def get_entitlement_policy() -> EntitlementPolicy:
    config = get_billing_config()
    return EntitlementPolicy(
        catalog=get_product_catalog(),
        ledger=get_credit_ledger(),
        clubs=PostgresClubDirectory(),
        credit_code=config.one_off_credit_code,
        payment_provider=config.default_provider,
        pricing_href=config.pricing_path,
    )


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    config = get_billing_config()
    return BillingService(
        repository=PostgresBillingRepository(),
        catalog=get_product_catalog(),
        ledger=get_credit_ledger(),
        event_logger=get_billing_event_logger(),
        default_provider=config.default_provider,
    )


@lru_cache(maxsize=1)
def get_idempotency_service() -> IdempotencyService:
    config = get_billing_config()
    return IdempotencyService(
        PostgresIdempotencyRepository(),
        in_progress_ttl_seconds=config.idempotency_in_progress_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_event_publish_service() -> EventPublishService:
    return EventPublishService(
        policy=get_entitlement_policy(),
        ledger=get_credit_ledger(),
        store=PostgresEventStore(),
        event_logger=get_billing_event_logger(),
    )


__all__ = [
    "LoggingBillingEventLogger",
    "get_billing_config",
    "get_billing_event_logger",
    "get_billing_service",
    "get_credit_ledger",
    "get_entitlement_policy",
    "get_event_publish_service",
    "get_idempotency_service",
    "get_product_catalog",
]
