"""Feature gating utilities coordinating entitlement enforcement."""
from .enforcement import (
    club_access_paywall,
    require_csv_export,
    require_member_capacity,
    require_paid_events,
    require_participants_within_plan,
    require_subscription_allows,
)
from .policy import ClubService, EntitlementPolicy

__all__ = [
    "ClubService",
    "EntitlementPolicy",
    "club_access_paywall",
    "require_csv_export",
    "require_member_capacity",
    "require_paid_events",
    "require_participants_within_plan",
    "require_subscription_allows",
]
