"""Errors raised by billing and entitlement enforcement."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from fastapi import status
from fastapi.responses import JSONResponse

from ..entitlements.models import PlanKey
from .models import PaymentOption


class PaywallReason(str, Enum):
    """Why a request was rejected with payment required."""

    PUBLISH_REQUIRES_PAYMENT = "PUBLISH_REQUIRES_PAYMENT"
    CLUB_REQUIRED_FOR_LARGE_EVENT = "CLUB_REQUIRED_FOR_LARGE_EVENT"
    MAX_EVENT_PARTICIPANTS_EXCEEDED = "MAX_EVENT_PARTICIPANTS_EXCEEDED"
    MAX_CLUB_MEMBERS_EXCEEDED = "MAX_CLUB_MEMBERS_EXCEEDED"
    PAID_EVENTS_NOT_ALLOWED = "PAID_EVENTS_NOT_ALLOWED"
    CSV_EXPORT_NOT_ALLOWED = "CSV_EXPORT_NOT_ALLOWED"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    SUBSCRIPTION_NOT_ACTIVE = "SUBSCRIPTION_NOT_ACTIVE"
    CLUB_CREATION_REQUIRES_PLAN = "CLUB_CREATION_REQUIRES_PLAN"
    NO_CREDIT_AVAILABLE = "NO_CREDIT_AVAILABLE"


@dataclass(eq=False)
class FeatureGateError(Exception):
    """Represents an actionable gating failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_403_FORBIDDEN
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.detail:
            error.update(self.detail)
        object.__setattr__(self, "_payload", {"success": False, "error": error})
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_response(self) -> JSONResponse:
        """Render the error as the JSON response returned to API callers."""

        return JSONResponse(status_code=self.status_code, content=dict(self.payload))


@dataclass(eq=False)
class PaywallError(FeatureGateError):
    """Payment required: the caller must buy a credit or move to a club plan.

    ``options`` lists the ways to unblock the request. When there are none the
    payload carries a call to action pointing at the pricing page instead.
    """

    code: str = "PAYWALL"
    message: str = "Payment required"
    status_code: int = status.HTTP_402_PAYMENT_REQUIRED
    detail: Optional[Mapping[str, Any]] = None
    reason: PaywallReason = PaywallReason.PUBLISH_REQUIRES_PAYMENT
    options: Sequence[PaymentOption] = ()
    current_plan_id: Optional[PlanKey] = None
    required_plan_id: Optional[PlanKey] = None
    meta: Optional[Mapping[str, Any]] = None
    pricing_href: str = "/pricing"

    def __post_init__(self) -> None:
        self.options = tuple(self.options)
        detail: Dict[str, Any] = {
            "reason": self.reason.value,
            "options": [option.model_dump(mode="json", by_alias=True) for option in self.options],
        }
        if self.current_plan_id is not None:
            detail["currentPlanId"] = PlanKey(self.current_plan_id).value
        if self.required_plan_id is not None:
            detail["requiredPlanId"] = PlanKey(self.required_plan_id).value
        if self.meta:
            detail["meta"] = dict(self.meta)
        if not self.options:
            detail["cta"] = {"type": "OPEN_PRICING", "href": self.pricing_href}
        self.detail = detail
        super().__post_init__()


@dataclass(eq=False)
class CreditConfirmationRequiredError(FeatureGateError):
    """The save is allowed but would spend a credit the user has not confirmed."""

    code: str = "CREDIT_CONFIRMATION_REQUIRED"
    message: str = "Saving this event will use one of your event upgrade credits"
    status_code: int = status.HTTP_409_CONFLICT
    detail: Optional[Mapping[str, Any]] = None
    reason: str = "EVENT_UPGRADE_WILL_BE_CONSUMED"
    credit_code: str = ""
    resource_id: Optional[str] = None
    requested_participants: Optional[int] = None
    cta_href: Optional[str] = None

    def __post_init__(self) -> None:
        self.detail = {
            "reason": self.reason,
            "meta": {
                "creditCode": self.credit_code,
                "resourceId": self.resource_id,
                "requestedParticipants": self.requested_participants,
            },
            "cta": {"type": "CONFIRM_CONSUME_CREDIT", "href": self.cta_href},
        }
        super().__post_init__()

    def with_cta_href(self, href: str) -> "CreditConfirmationRequiredError":
        """Return a copy whose call to action points at ``href``."""

        return replace(self, cta_href=href)


@dataclass(eq=False)
class RequestInProgressError(FeatureGateError):
    """Another request with the same idempotency key has not finished yet."""

    code: str = "REQUEST_IN_PROGRESS"
    message: str = "A request with this idempotency key is already being processed"
    status_code: int = status.HTTP_409_CONFLICT
    detail: Optional[Mapping[str, Any]] = None


class ProductNotFoundError(LookupError):
    """No product exists for the requested code."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Product not found: {code}")
        self.code = code


class DuplicateCreditError(Exception):
    """A credit already exists for the source transaction."""

    def __init__(self, source_transaction_id: str) -> None:
        super().__init__(f"Credit already issued for transaction {source_transaction_id}")
        self.source_transaction_id = source_transaction_id


class ConsumptionPreconditionError(ValueError):
    """Consumption was attempted without a resource to bind the credit to."""


class CreditNotApplicableError(ValueError):
    """Credits were offered for a resource that cannot use them."""


class InvalidTransactionStateError(ValueError):
    """A transaction cannot move to the requested status."""


__all__ = [
    "ConsumptionPreconditionError",
    "CreditConfirmationRequiredError",
    "CreditNotApplicableError",
    "DuplicateCreditError",
    "FeatureGateError",
    "InvalidTransactionStateError",
    "PaywallError",
    "PaywallReason",
    "ProductNotFoundError",
    "RequestInProgressError",
]
