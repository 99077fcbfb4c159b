"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import Credit, Product, SettlementResult, Transaction
from ..entitlements.models import EventEntitlements, PaidMode, PlanKey


class CreditResponse(BaseModel):
    id: str
    credit_code: str = Field(alias="creditCode")
    status: str
    source_transaction_id: str = Field(alias="sourceTransactionId")
    consumed_resource_id: Optional[str] = Field(alias="consumedResourceId", default=None)
    consumed_at: Optional[datetime] = Field(alias="consumedAt", default=None)
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_credit(cls, credit: Credit) -> "CreditResponse":
        return cls(
            id=credit.id,
            credit_code=credit.credit_code,
            status=credit.status.value,
            source_transaction_id=credit.source_transaction_id,
            consumed_resource_id=credit.consumed_resource_id,
            consumed_at=credit.consumed_at,
            created_at=credit.created_at,
        )


class CreditListResponse(BaseModel):
    credits: list[CreditResponse]
    available_count: int = Field(alias="availableCount")

    model_config = ConfigDict(populate_by_name=True)


class ProductResponse(BaseModel):
    code: str
    title: str
    price: int
    currency_code: str = Field(alias="currencyCode")
    is_active: bool = Field(alias="isActive")
    constraints: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(
            code=product.code,
            title=product.title,
            price=product.price,
            currency_code=product.currency_code,
            is_active=product.is_active,
            constraints=dict(product.constraints),
        )


class PurchaseCreditRequest(BaseModel):
    product_code: str = Field(alias="productCode")
    provider: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TransactionResponse(BaseModel):
    id: str
    product_code: str = Field(alias="productCode")
    amount: int
    currency_code: str = Field(alias="currencyCode")
    status: str
    provider: str
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=transaction.id,
            product_code=transaction.product_code,
            amount=transaction.amount,
            currency_code=transaction.currency_code,
            status=transaction.status.value,
            provider=transaction.provider,
            created_at=transaction.created_at,
        )


class CompleteTransactionRequest(BaseModel):
    provider_payment_id: Optional[str] = Field(alias="providerPaymentId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class SettlementResponse(BaseModel):
    transaction: TransactionResponse
    credit: CreditResponse
    already_settled: bool = Field(alias="alreadySettled", default=False)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: SettlementResult) -> "SettlementResponse":
        return cls(
            transaction=TransactionResponse.from_transaction(result.transaction),
            credit=CreditResponse.from_credit(result.credit),
            already_settled=result.already_settled,
        )


class GrantCreditRequest(BaseModel):
    credit_code: Optional[str] = Field(alias="creditCode", default=None)
    reason: str = Field(min_length=1, max_length=500)

    model_config = ConfigDict(populate_by_name=True)


class EventEntitlementsResponse(BaseModel):
    max_event_participants: Optional[int] = Field(alias="maxEventParticipants", default=None)
    paid_mode: PaidMode = Field(alias="paidMode")
    credit_applied: bool = Field(alias="creditApplied", default=False)
    club_plan: Optional[PlanKey] = Field(alias="clubPlan", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_entitlements(cls, entitlements: EventEntitlements) -> "EventEntitlementsResponse":
        return cls(
            max_event_participants=entitlements.max_event_participants,
            paid_mode=entitlements.paid_mode,
            credit_applied=entitlements.credit_applied,
            club_plan=entitlements.club_plan,
        )
