"""Static catalog definitions for club plans and the subscription action matrix."""
from __future__ import annotations

from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Protocol, Sequence

from .models import BillingAction, ClubPlan, PlanKey, SubscriptionStatus


PLAN_CATALOG: Dict[PlanKey, ClubPlan] = {
    PlanKey.FREE: ClubPlan(
        key=PlanKey.FREE,
        title="Free",
        max_members=None,
        max_event_participants=15,
        allow_paid_events=False,
        allow_csv_export=False,
    ),
    PlanKey.CLUB_50: ClubPlan(
        key=PlanKey.CLUB_50,
        title="Club 50",
        max_members=50,
        max_event_participants=50,
        allow_paid_events=True,
        allow_csv_export=True,
    ),
    PlanKey.CLUB_500: ClubPlan(
        key=PlanKey.CLUB_500,
        title="Club 500",
        max_members=500,
        max_event_participants=500,
        allow_paid_events=True,
        allow_csv_export=True,
    ),
    PlanKey.CLUB_UNLIMITED: ClubPlan(
        key=PlanKey.CLUB_UNLIMITED,
        title="Club Unlimited",
        max_members=None,
        max_event_participants=None,
        allow_paid_events=True,
        allow_csv_export=True,
    ),
}

# Actions still permitted while a subscription is not active. Active
# subscriptions may perform every action.
SUBSCRIPTION_ACTION_POLICY: Mapping[SubscriptionStatus, FrozenSet[BillingAction]] = {
    SubscriptionStatus.ACTIVE: frozenset(BillingAction),
    SubscriptionStatus.GRACE: frozenset(
        {
            BillingAction.CLUB_CREATE_EVENT,
            BillingAction.CLUB_UPDATE_EVENT,
            BillingAction.CLUB_EXPORT_PARTICIPANTS_CSV,
            BillingAction.CLUB_REMOVE_MEMBER,
            BillingAction.CLUB_UPDATE,
        }
    ),
    SubscriptionStatus.PENDING: frozenset(
        {
            BillingAction.CLUB_UPDATE_EVENT,
            BillingAction.CLUB_REMOVE_MEMBER,
            BillingAction.CLUB_UPDATE,
        }
    ),
    SubscriptionStatus.EXPIRED: frozenset(
        {
            BillingAction.CLUB_REMOVE_MEMBER,
            BillingAction.CLUB_UPDATE,
        }
    ),
}


class PlanDirectory(Protocol):
    """Source of club plan definitions."""

    def get_plan(self, plan_key: PlanKey) -> ClubPlan:
        ...

    def list_plans(self) -> Sequence[ClubPlan]:
        ...


class StaticPlanDirectory(PlanDirectory):
    """Plan directory backed by :data:`PLAN_CATALOG`."""

    def __init__(self, plans: Optional[Mapping[PlanKey, ClubPlan]] = None) -> None:
        self._plans = dict(plans or PLAN_CATALOG)

    def get_plan(self, plan_key: PlanKey) -> ClubPlan:
        return get_plan_definition(plan_key, self._plans)

    def list_plans(self) -> Sequence[ClubPlan]:
        return list(self._plans.values())


def get_plan_definition(
    plan_key: PlanKey,
    plans: Optional[Mapping[PlanKey, ClubPlan]] = None,
) -> ClubPlan:
    catalog = PLAN_CATALOG if plans is None else plans
    try:
        return catalog[plan_key]
    except KeyError as exc:  # pragma: no cover - configuration issue
        raise KeyError(f"Unknown plan: {plan_key}") from exc


def is_action_allowed(
    status: SubscriptionStatus,
    action: BillingAction,
    policy: Mapping[SubscriptionStatus, FrozenSet[BillingAction]] = SUBSCRIPTION_ACTION_POLICY,
) -> bool:
    return action in policy.get(status, frozenset())


def _first_plan(plans: Iterable[ClubPlan], predicate: Callable[[ClubPlan], bool]) -> PlanKey:
    paid_plans = [plan for plan in plans if plan.key != PlanKey.FREE]
    for plan in paid_plans:
        if predicate(plan):
            return plan.key
    return PlanKey.CLUB_UNLIMITED


def required_plan_for_participants(
    requested: int,
    plans: Optional[Iterable[ClubPlan]] = None,
) -> PlanKey:
    """Return the smallest plan whose event limit covers ``requested``."""

    available = list(PLAN_CATALOG.values() if plans is None else plans)
    free_plan = next((plan for plan in available if plan.key == PlanKey.FREE), None)
    if free_plan is not None and free_plan.allows_participants(requested):
        return PlanKey.FREE
    return _first_plan(available, lambda plan: plan.allows_participants(requested))


def required_plan_for_members(
    count: int,
    plans: Optional[Iterable[ClubPlan]] = None,
) -> PlanKey:
    """Return the smallest paid plan whose member limit covers ``count``."""

    available = PLAN_CATALOG.values() if plans is None else plans
    return _first_plan(available, lambda plan: plan.allows_members(count))


def minimum_plan_for_paid_events(plans: Optional[Iterable[ClubPlan]] = None) -> PlanKey:
    available = PLAN_CATALOG.values() if plans is None else plans
    return _first_plan(available, lambda plan: plan.allow_paid_events)


def minimum_plan_for_csv_export(plans: Optional[Iterable[ClubPlan]] = None) -> PlanKey:
    available = PLAN_CATALOG.values() if plans is None else plans
    return _first_plan(available, lambda plan: plan.allow_csv_export)


__all__ = [
    "PLAN_CATALOG",
    "SUBSCRIPTION_ACTION_POLICY",
    "PlanDirectory",
    "StaticPlanDirectory",
    "get_plan_definition",
    "is_action_allowed",
    "minimum_plan_for_csv_export",
    "minimum_plan_for_paid_events",
    "required_plan_for_members",
    "required_plan_for_participants",
]
