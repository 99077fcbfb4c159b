"""Domain models for the billing system."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..entitlements.models import PlanKey


ADMIN_GRANT_PROVIDER = "admin-grant"


class ProductType(str, Enum):
    """Kinds of purchasable products."""

    CREDIT = "credit"


class CreditCode(str, Enum):
    """Known one-off credit codes."""

    EVENT_UPGRADE_500 = "EVENT_UPGRADE_500"


class TransactionStatus(str, Enum):
    """Lifecycle status for a billing transaction."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self != TransactionStatus.PENDING


class CreditStatus(str, Enum):
    """Status of a single one-off credit."""

    AVAILABLE = "available"
    CONSUMED = "consumed"


class PaymentOptionType(str, Enum):
    """Ways a rejected request can be unblocked."""

    ONE_OFF_CREDIT = "ONE_OFF_CREDIT"
    CLUB_ACCESS = "CLUB_ACCESS"


class Product(BaseModel):
    """Priced product; the single source of truth for one-off prices."""

    code: str
    title: str
    product_type: ProductType = ProductType.CREDIT
    price: int = Field(ge=0)
    currency_code: str = Field(min_length=3, max_length=3)
    is_active: bool = True
    constraints: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency_code")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def max_participants(self) -> Optional[int]:
        """Participant limit unlocked by this product, when it declares one."""
        value = self.constraints.get("max_participants")
        return int(value) if value is not None else None


class Transaction(BaseModel):
    """Payment record; a completed transaction backs exactly one credit."""

    id: str
    user_id: str
    product_code: str
    amount: int = Field(ge=0)
    currency_code: str = Field(min_length=3, max_length=3)
    status: TransactionStatus = TransactionStatus.PENDING
    provider: str
    provider_payment_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency_code")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class Credit(BaseModel):
    """Single one-off entitlement unit owned by a user."""

    id: str
    user_id: str
    credit_code: str
    source_transaction_id: str
    status: CreditStatus = CreditStatus.AVAILABLE
    consumed_resource_id: Optional[str] = None
    consumed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _check_consumed_state(self) -> "Credit":
        consumed_fields_set = self.consumed_resource_id is not None and self.consumed_at is not None
        consumed_fields_empty = self.consumed_resource_id is None and self.consumed_at is None
        if self.status == CreditStatus.CONSUMED and not consumed_fields_set:
            raise ValueError("consumed credits require consumed_resource_id and consumed_at")
        if self.status == CreditStatus.AVAILABLE and not consumed_fields_empty:
            raise ValueError("available credits cannot carry consumption details")
        return self

    @property
    def is_available(self) -> bool:
        return self.status == CreditStatus.AVAILABLE


class OneOffCreditOption(BaseModel):
    """Buy a single credit for this resource."""

    type: Literal[PaymentOptionType.ONE_OFF_CREDIT] = PaymentOptionType.ONE_OFF_CREDIT
    product_code: str = Field(alias="productCode")
    price: int
    currency_code: str = Field(alias="currencyCode")
    provider: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ClubAccessOption(BaseModel):
    """Move the resource under a club on the recommended plan."""

    type: Literal[PaymentOptionType.CLUB_ACCESS] = PaymentOptionType.CLUB_ACCESS
    recommended_plan_id: PlanKey = Field(alias="recommendedPlanId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


PaymentOption = Annotated[
    Union[OneOffCreditOption, ClubAccessOption],
    Field(discriminator="type"),
]


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_COMPLETED = "transaction_completed"
    TRANSACTION_FAILED = "transaction_failed"
    CREDIT_ISSUED = "credit_issued"
    CREDIT_GRANTED = "credit_granted"
    CREDIT_CONSUMED = "credit_consumed"
    CREDIT_COMPENSATION_FAILED = "credit_compensation_failed"


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and support tooling."""

    event_type: BillingAuditEventType
    user_id: Optional[str] = None
    actor_id: Optional[str] = None
    transaction_id: Optional[str] = None
    credit_id: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SettlementResult(BaseModel):
    """Outcome of completing a transaction."""

    transaction: Transaction
    credit: Credit
    already_settled: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)
