"""Club plan reference data and entitlement models."""

from .catalog import (
    PLAN_CATALOG,
    SUBSCRIPTION_ACTION_POLICY,
    PlanDirectory,
    StaticPlanDirectory,
    get_plan_definition,
    is_action_allowed,
    minimum_plan_for_csv_export,
    minimum_plan_for_paid_events,
    required_plan_for_members,
    required_plan_for_participants,
)
from .models import (
    BillingAction,
    ClubPlan,
    ClubPlanContext,
    ClubSubscription,
    EntitlementDecision,
    EventEntitlements,
    EventPublishRequest,
    MembershipRole,
    PaidMode,
    PlanKey,
    SubscriptionStatus,
)

__all__ = [
    "BillingAction",
    "ClubPlan",
    "ClubPlanContext",
    "ClubSubscription",
    "EntitlementDecision",
    "EventEntitlements",
    "EventPublishRequest",
    "MembershipRole",
    "PLAN_CATALOG",
    "PaidMode",
    "PlanDirectory",
    "PlanKey",
    "SUBSCRIPTION_ACTION_POLICY",
    "StaticPlanDirectory",
    "SubscriptionStatus",
    "get_plan_definition",
    "is_action_allowed",
    "minimum_plan_for_csv_export",
    "minimum_plan_for_paid_events",
    "required_plan_for_members",
    "required_plan_for_participants",
]
