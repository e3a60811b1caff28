"""
Subscription tiers and their entitlements.

``TIER_ENTITLEMENTS`` is the single mapping from tier to feature flags and
link quota. Flags are never stored on the account; everything that needs
them asks ``entitlements_for``.
"""

from dataclasses import asdict, dataclass
from enum import Enum


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"

    @property
    def is_paid(self) -> bool:
        return self is not Tier.FREE


@dataclass(frozen=True)
class Entitlements:
    custom_aliases_enabled: bool
    analytics_enabled: bool
    expiry_enabled: bool
    password_protection_enabled: bool
    max_links: int

    def as_dict(self) -> dict:
        return asdict(self)


TIER_ENTITLEMENTS: dict[Tier, Entitlements] = {
    Tier.FREE: Entitlements(
        custom_aliases_enabled=False,
        analytics_enabled=False,
        expiry_enabled=False,
        password_protection_enabled=False,
        max_links=10,
    ),
    Tier.PREMIUM: Entitlements(
        custom_aliases_enabled=True,
        analytics_enabled=True,
        expiry_enabled=True,
        password_protection_enabled=True,
        max_links=100,
    ),
    Tier.ENTERPRISE: Entitlements(
        custom_aliases_enabled=True,
        analytics_enabled=True,
        expiry_enabled=True,
        password_protection_enabled=True,
        max_links=1000,
    ),
}


def entitlements_for(tier: Tier) -> Entitlements:
    return TIER_ENTITLEMENTS[Tier(tier)]


def paid_tier(plan_id: str) -> Tier:
    """
    Map a checkout plan identifier to the tier it activates.

    Raises:
        ValueError: For unknown plans and for ``free``, which cannot be bought
    """
    tier = Tier(plan_id)
    if not tier.is_paid:
        raise ValueError(f"Plan '{plan_id}' is not a paid plan")
    return tier
