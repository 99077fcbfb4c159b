"""Entitlement policy deciding whether an event or club action may proceed."""
from __future__ import annotations

import logging
from typing import FrozenSet, Mapping, Optional, Protocol

from ..billing.catalog import ProductCatalog
from ..billing.exceptions import (
    CreditConfirmationRequiredError,
    CreditNotApplicableError,
    PaywallError,
    PaywallReason,
    ProductNotFoundError,
)
from ..billing.ledger import CreditLedger
from ..billing.models import ClubAccessOption, CreditCode, OneOffCreditOption
from ..entitlements.catalog import (
    SUBSCRIPTION_ACTION_POLICY,
    PlanDirectory,
    StaticPlanDirectory,
    required_plan_for_participants,
)
from ..entitlements.models import (
    BillingAction,
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
from .enforcement import (
    require_csv_export,
    require_member_capacity,
    require_paid_events,
    require_participants_within_plan,
    require_subscription_allows,
)


logger = logging.getLogger("billing")

_EVENT_ACTIONS = {
    BillingAction.CLUB_CREATE_EVENT,
    BillingAction.CLUB_UPDATE_EVENT,
    BillingAction.CLUB_CREATE_PAID_EVENT,
}


class ClubService(Protocol):
    """Club data the policy needs; owned by the clubs subsystem."""

    def get_club_subscription(self, club_id: str) -> Optional[ClubSubscription]:
        ...

    def get_member_role(self, club_id: str, user_id: str) -> Optional[MembershipRole]:
        ...


class EntitlementPolicy:
    """Decides whether a save or club action is allowed and whether it costs a credit.

    The policy only reads. Spending a credit is left to the caller, which
    must route the save through :func:`with_credit_transaction` whenever the
    returned decision has ``requires_credit`` set.
    """

    def __init__(
        self,
        *,
        catalog: ProductCatalog,
        ledger: CreditLedger,
        clubs: ClubService,
        plans: Optional[PlanDirectory] = None,
        credit_code: str = CreditCode.EVENT_UPGRADE_500.value,
        payment_provider: str = "kaspi",
        pricing_href: str = "/pricing",
        action_policy: Mapping[SubscriptionStatus, FrozenSet[BillingAction]] = SUBSCRIPTION_ACTION_POLICY,
    ) -> None:
        self._catalog = catalog
        self._ledger = ledger
        self._clubs = clubs
        self._plans = plans or StaticPlanDirectory()
        self._credit_code = credit_code
        self._payment_provider = payment_provider
        self._pricing_href = pricing_href
        self._action_policy = action_policy

    @property
    def credit_code(self) -> str:
        return self._credit_code

    # Event publishing

    def enforce_event_publish(
        self,
        request: EventPublishRequest,
        *,
        confirm_credit: bool = False,
    ) -> EntitlementDecision:
        """Check a create or update of an event before it is written.

        Raises :class:`PaywallError` when the save needs a purchase and
        :class:`CreditConfirmationRequiredError` when it would spend a credit
        the caller has not confirmed.
        """

        if request.club_id is not None:
            return self._enforce_club_event(request, confirm_credit=confirm_credit)
        return self._enforce_personal_event(request, confirm_credit=confirm_credit)

    def _enforce_personal_event(
        self,
        request: EventPublishRequest,
        *,
        confirm_credit: bool,
    ) -> EntitlementDecision:
        free_plan = self._plans.get_plan(PlanKey.FREE)
        plans = self._plans.list_plans()

        if request.is_paid:
            require_paid_events(free_plan, plans, pricing_href=self._pricing_href)

        requested = request.requested_participants
        free_limit = free_plan.max_event_participants
        if requested is None or free_limit is None or requested <= free_limit:
            return EntitlementDecision(requires_credit=False)

        product = self._catalog.get_product(self._credit_code)
        one_off_limit = product.max_participants
        if one_off_limit is None:
            raise ProductNotFoundError(self._credit_code)

        recommended_plan = required_plan_for_participants(requested, plans)
        if requested > one_off_limit:
            raise PaywallError(
                reason=PaywallReason.CLUB_REQUIRED_FOR_LARGE_EVENT,
                message=(
                    f"Events with more than {one_off_limit} participants require a club plan"
                ),
                options=[ClubAccessOption(recommended_plan_id=recommended_plan)],
                current_plan_id=PlanKey.FREE,
                required_plan_id=recommended_plan,
                meta={"requestedParticipants": requested, "maxOneOffLimit": one_off_limit},
                pricing_href=self._pricing_href,
            )

        if request.resource_id and self._ledger.consumed_for_resource(request.resource_id, self._credit_code):
            logger.debug("Event %s already carries credit %s", request.resource_id, self._credit_code)
            return EntitlementDecision(requires_credit=False)

        if not self._ledger.has_available(request.user_id, self._credit_code):
            options = [ClubAccessOption(recommended_plan_id=recommended_plan)]
            if product.is_active:
                options.insert(
                    0,
                    OneOffCreditOption(
                        product_code=product.code,
                        price=product.price,
                        currency_code=product.currency_code,
                        provider=self._payment_provider,
                    ),
                )
            raise PaywallError(
                reason=PaywallReason.PUBLISH_REQUIRES_PAYMENT,
                message=(
                    f"Events with more than {free_limit} participants require an upgrade"
                ),
                options=options,
                current_plan_id=PlanKey.FREE,
                meta={"requestedParticipants": requested, "freeLimit": free_limit},
                pricing_href=self._pricing_href,
            )

        if not confirm_credit:
            raise CreditConfirmationRequiredError(
                credit_code=self._credit_code,
                resource_id=request.resource_id,
                requested_participants=requested,
            )

        return EntitlementDecision(requires_credit=True, credit_code=self._credit_code)

    def _enforce_club_event(
        self,
        request: EventPublishRequest,
        *,
        confirm_credit: bool,
    ) -> EntitlementDecision:
        if confirm_credit:
            raise CreditNotApplicableError("Credits cannot be applied to club events")

        club_id = request.club_id or ""
        context = self.get_club_current_plan(club_id)
        plan = self._plans.get_plan(context.plan_key)
        plans = self._plans.list_plans()
        action = BillingAction.CLUB_UPDATE_EVENT if request.is_update else BillingAction.CLUB_CREATE_EVENT

        subscription = context.subscription
        if subscription is not None and not subscription.is_active:
            require_subscription_allows(
                subscription,
                action,
                policy=self._action_policy,
                pricing_href=self._pricing_href,
            )

        if request.is_paid:
            require_paid_events(plan, plans, pricing_href=self._pricing_href)
            role = self._clubs.get_member_role(club_id, request.user_id)
            if role != MembershipRole.OWNER:
                raise PermissionError("Only the club owner can publish paid events")

        if request.requested_participants is not None:
            require_participants_within_plan(
                plan,
                request.requested_participants,
                plans,
                pricing_href=self._pricing_href,
            )

        return EntitlementDecision(requires_credit=False)

    # Club actions

    def get_club_current_plan(self, club_id: str) -> ClubPlanContext:
        subscription = self._clubs.get_club_subscription(club_id)
        if subscription is None:
            return ClubPlanContext(plan_key=PlanKey.FREE)
        return ClubPlanContext(plan_key=subscription.plan_key, subscription=subscription)

    def enforce_club_action(
        self,
        club_id: str,
        action: BillingAction,
        *,
        event_participants: Optional[int] = None,
        club_members: Optional[int] = None,
        is_paid_event: bool = False,
    ) -> None:
        """Raise :class:`PaywallError` unless the club's plan permits ``action``."""

        context = self.get_club_current_plan(club_id)
        plan = self._plans.get_plan(context.plan_key)
        plans = self._plans.list_plans()

        subscription = context.subscription
        if subscription is not None and not subscription.is_active:
            require_subscription_allows(
                subscription,
                action,
                policy=self._action_policy,
                pricing_href=self._pricing_href,
            )

        if action == BillingAction.CLUB_CREATE_PAID_EVENT or is_paid_event:
            require_paid_events(plan, plans, pricing_href=self._pricing_href)

        if action == BillingAction.CLUB_EXPORT_PARTICIPANTS_CSV:
            require_csv_export(plan, plans, pricing_href=self._pricing_href)

        if event_participants is not None and action in _EVENT_ACTIONS:
            require_participants_within_plan(plan, event_participants, plans, pricing_href=self._pricing_href)

        if action == BillingAction.CLUB_INVITE_MEMBER and club_members is not None:
            require_member_capacity(plan, club_members, plans, pricing_href=self._pricing_href)

    # Read models

    def get_effective_event_entitlements(
        self,
        *,
        event_id: Optional[str] = None,
        club_id: Optional[str] = None,
    ) -> EventEntitlements:
        """Return the participant allowance that applies to an event right now."""

        if club_id is not None:
            context = self.get_club_current_plan(club_id)
            plan = self._plans.get_plan(context.plan_key)
            return EventEntitlements(
                max_event_participants=plan.max_event_participants,
                paid_mode=PaidMode.CLUB_SUBSCRIPTION,
                club_plan=context.plan_key,
            )

        if event_id is not None and self._ledger.consumed_for_resource(event_id, self._credit_code):
            product = self._catalog.get_product(self._credit_code)
            return EventEntitlements(
                max_event_participants=product.max_participants,
                paid_mode=PaidMode.PERSONAL_CREDIT,
                credit_applied=True,
            )

        free_plan = self._plans.get_plan(PlanKey.FREE)
        return EventEntitlements(
            max_event_participants=free_plan.max_event_participants,
            paid_mode=PaidMode.FREE,
        )


__all__ = ["ClubService", "EntitlementPolicy"]
