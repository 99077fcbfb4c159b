"""Billing domain package: products, credits and credit-backed saves."""

from .catalog import ProductCatalog, ProductRepository
from .config import BillingConfig, load_billing_config
from .exceptions import (
    ConsumptionPreconditionError,
    CreditConfirmationRequiredError,
    CreditNotApplicableError,
    DuplicateCreditError,
    FeatureGateError,
    InvalidTransactionStateError,
    PaywallError,
    PaywallReason,
    ProductNotFoundError,
    RequestInProgressError,
)
from .ledger import CreditLedger, CreditRepository
from .models import (
    ADMIN_GRANT_PROVIDER,
    BillingAuditEvent,
    BillingAuditEventType,
    ClubAccessOption,
    Credit,
    CreditCode,
    CreditStatus,
    OneOffCreditOption,
    PaymentOption,
    PaymentOptionType,
    Product,
    ProductType,
    SettlementResult,
    Transaction,
    TransactionStatus,
)
from .service import BillingEventLogger, BillingService, TransactionRepository
from .transaction import with_credit_transaction

__all__ = [
    "ADMIN_GRANT_PROVIDER",
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingConfig",
    "BillingEventLogger",
    "BillingService",
    "ClubAccessOption",
    "ConsumptionPreconditionError",
    "Credit",
    "CreditCode",
    "CreditConfirmationRequiredError",
    "CreditLedger",
    "CreditNotApplicableError",
    "CreditRepository",
    "CreditStatus",
    "DuplicateCreditError",
    "FeatureGateError",
    "InvalidTransactionStateError",
    "OneOffCreditOption",
    "PaymentOption",
    "PaymentOptionType",
    "PaywallError",
    "PaywallReason",
    "Product",
    "ProductCatalog",
    "ProductNotFoundError",
    "ProductRepository",
    "ProductType",
    "RequestInProgressError",
    "SettlementResult",
    "Transaction",
    "TransactionRepository",
    "TransactionStatus",
    "load_billing_config",
    "with_credit_transaction",
]
