"""Domain models for club plans, subscriptions and publish decisions."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanKey(str, Enum):
    """Canonical identifiers for club plans."""

    FREE = "free"
    CLUB_50 = "club_50"
    CLUB_500 = "club_500"
    CLUB_UNLIMITED = "club_unlimited"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for club subscriptions."""

    PENDING = "pending"
    ACTIVE = "active"
    GRACE = "grace"
    EXPIRED = "expired"


class BillingAction(str, Enum):
    """Club operations that are gated by plan and subscription status."""

    CLUB_CREATE_EVENT = "CLUB_CREATE_EVENT"
    CLUB_UPDATE_EVENT = "CLUB_UPDATE_EVENT"
    CLUB_CREATE_PAID_EVENT = "CLUB_CREATE_PAID_EVENT"
    CLUB_EXPORT_PARTICIPANTS_CSV = "CLUB_EXPORT_PARTICIPANTS_CSV"
    CLUB_INVITE_MEMBER = "CLUB_INVITE_MEMBER"
    CLUB_REMOVE_MEMBER = "CLUB_REMOVE_MEMBER"
    CLUB_UPDATE = "CLUB_UPDATE"


class MembershipRole(str, Enum):
    """Roles a member can have within a club."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class PaidMode(str, Enum):
    """How an event obtained its participant allowance."""

    FREE = "free"
    PERSONAL_CREDIT = "personal_credit"
    CLUB_SUBSCRIPTION = "club_subscription"


@dataclass(frozen=True)
class ClubPlan:
    """Limits and feature switches attached to a club plan.

    ``None`` limits mean the plan does not cap that dimension.
    """

    key: PlanKey
    title: str
    max_members: Optional[int]
    max_event_participants: Optional[int]
    allow_paid_events: bool = False
    allow_csv_export: bool = False
    is_public: bool = True

    def allows_participants(self, requested: int) -> bool:
        return self.max_event_participants is None or requested <= self.max_event_participants

    def allows_members(self, count: int) -> bool:
        return self.max_members is None or count <= self.max_members


class ClubSubscription(BaseModel):
    """Current subscription of a club as reported by the club service."""

    club_id: str
    plan_key: PlanKey
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    grace_until: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class ClubPlanContext(BaseModel):
    """Resolved plan for a club together with the subscription it came from."""

    plan_key: PlanKey
    subscription: Optional[ClubSubscription] = None

    model_config = ConfigDict(frozen=True)


class EventPublishRequest(BaseModel):
    """Facts about a create or update that the entitlement policy needs."""

    user_id: str
    club_id: Optional[str] = None
    requested_participants: Optional[int] = Field(default=None, ge=1)
    is_paid: bool = False
    resource_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_update(self) -> bool:
        return self.resource_id is not None


class EntitlementDecision(BaseModel):
    """Successful outcome of an entitlement check.

    ``requires_credit`` tells the caller that the save must go through the
    credit transaction and consume ``credit_code`` against the saved resource.
    """

    requires_credit: bool = False
    credit_code: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class EventEntitlements(BaseModel):
    """Participant allowance that currently applies to an event."""

    max_event_participants: Optional[int]
    paid_mode: PaidMode
    credit_applied: bool = False
    club_plan: Optional[PlanKey] = None

    model_config = ConfigDict(frozen=True)
