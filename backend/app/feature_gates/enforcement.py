"""Plan-level checks shared by event publishing and club actions."""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from ..billing.exceptions import PaywallError, PaywallReason
from ..billing.models import ClubAccessOption
from ..entitlements.catalog import (
    SUBSCRIPTION_ACTION_POLICY,
    is_action_allowed,
    minimum_plan_for_csv_export,
    minimum_plan_for_paid_events,
    required_plan_for_members,
    required_plan_for_participants,
)
from ..entitlements.models import (
    BillingAction,
    ClubPlan,
    ClubSubscription,
    PlanKey,
    SubscriptionStatus,
)


def club_access_paywall(
    *,
    reason: PaywallReason,
    message: str,
    recommended_plan: PlanKey,
    current_plan: Optional[PlanKey] = None,
    meta: Optional[Mapping[str, Any]] = None,
    pricing_href: str = "/pricing",
) -> PaywallError:
    """Build a paywall whose only way forward is a club plan."""

    return PaywallError(
        reason=reason,
        message=message,
        options=[ClubAccessOption(recommended_plan_id=recommended_plan)],
        current_plan_id=current_plan,
        required_plan_id=recommended_plan,
        meta=meta,
        pricing_href=pricing_href,
    )


def require_subscription_allows(
    subscription: ClubSubscription,
    action: BillingAction,
    *,
    policy: Mapping[SubscriptionStatus, Any] = SUBSCRIPTION_ACTION_POLICY,
    pricing_href: str = "/pricing",
) -> None:
    """Ensure a non-active subscription still permits ``action``."""

    if is_action_allowed(subscription.status, action, policy):
        return

    if subscription.status == SubscriptionStatus.EXPIRED:
        reason = PaywallReason.SUBSCRIPTION_EXPIRED
        message = "Club subscription has expired"
    else:
        reason = PaywallReason.SUBSCRIPTION_NOT_ACTIVE
        message = f"Club subscription is {subscription.status.value}"

    raise club_access_paywall(
        reason=reason,
        message=message,
        recommended_plan=subscription.plan_key,
        current_plan=subscription.plan_key,
        meta={"status": subscription.status.value, "action": action.value},
        pricing_href=pricing_href,
    )


def require_paid_events(
    plan: ClubPlan,
    plans: Iterable[ClubPlan],
    *,
    pricing_href: str = "/pricing",
) -> None:
    if plan.allow_paid_events:
        return
    raise club_access_paywall(
        reason=PaywallReason.PAID_EVENTS_NOT_ALLOWED,
        message="Paid events require a club plan",
        recommended_plan=minimum_plan_for_paid_events(plans),
        current_plan=plan.key,
        pricing_href=pricing_href,
    )


def require_csv_export(
    plan: ClubPlan,
    plans: Iterable[ClubPlan],
    *,
    pricing_href: str = "/pricing",
) -> None:
    if plan.allow_csv_export:
        return
    raise club_access_paywall(
        reason=PaywallReason.CSV_EXPORT_NOT_ALLOWED,
        message="Exporting participants requires a club plan",
        recommended_plan=minimum_plan_for_csv_export(plans),
        current_plan=plan.key,
        pricing_href=pricing_href,
    )


def require_participants_within_plan(
    plan: ClubPlan,
    requested: int,
    plans: Iterable[ClubPlan],
    *,
    pricing_href: str = "/pricing",
) -> None:
    if plan.allows_participants(requested):
        return
    raise club_access_paywall(
        reason=PaywallReason.MAX_EVENT_PARTICIPANTS_EXCEEDED,
        message=(
            f"Event with {requested} participants exceeds the "
            f"{plan.title} limit of {plan.max_event_participants}"
        ),
        recommended_plan=required_plan_for_participants(requested, plans),
        current_plan=plan.key,
        meta={"requested": requested, "limit": plan.max_event_participants},
        pricing_href=pricing_href,
    )


def require_member_capacity(
    plan: ClubPlan,
    current_members: int,
    plans: Iterable[ClubPlan],
    *,
    pricing_href: str = "/pricing",
) -> None:
    """Ensure one more member fits in the club's plan."""

    if plan.allows_members(current_members + 1):
        return
    raise club_access_paywall(
        reason=PaywallReason.MAX_CLUB_MEMBERS_EXCEEDED,
        message=f"Club has reached the maximum of {plan.max_members} members",
        recommended_plan=required_plan_for_members(current_members + 1, plans),
        current_plan=plan.key,
        meta={"requested": current_members + 1, "limit": plan.max_members},
        pricing_href=pricing_href,
    )


__all__ = [
    "club_access_paywall",
    "require_csv_export",
    "require_member_capacity",
    "require_paid_events",
    "require_participants_within_plan",
    "require_subscription_allows",
]
