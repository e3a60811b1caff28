"""
Feature Gate

Decides whether a requester may use a premium capability. The decision is a
pure function of the requester's tier: anonymous requesters are always
evaluated as free, whatever the request body claims.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from shortcut.core.exceptions import PremiumRequiredError
from shortcut.core.tiers import Tier, entitlements_for
from shortcut.db.models import Account


class Capability(str, Enum):
    CUSTOM_ALIAS = "custom_alias"
    EXPIRY = "expiry"
    PASSWORD_PROTECTION = "password_protection"
    ANALYTICS = "analytics"


# Entitlement flag consulted for each capability
_CAPABILITY_FLAGS = {
    Capability.CUSTOM_ALIAS: "custom_aliases_enabled",
    Capability.EXPIRY: "expiry_enabled",
    Capability.PASSWORD_PROTECTION: "password_protection_enabled",
    Capability.ANALYTICS: "analytics_enabled",
}


@dataclass(frozen=True)
class GateDecision:
    capability: Capability
    allowed: bool
    reason: Optional[str] = None
    upgrade_required: bool = False


class FeatureGate:
    """Evaluates capabilities against the central tier entitlements."""

    def evaluate(self, account: Optional[Account], capability: Capability) -> GateDecision:
        tier = account.tier if account is not None else Tier.FREE
        entitlements = entitlements_for(tier)

        if getattr(entitlements, _CAPABILITY_FLAGS[capability]):
            return GateDecision(capability=capability, allowed=True)

        if account is None:
            reason = f"Sign in with a premium plan to use {capability.value}"
        else:
            reason = f"The {tier.value} plan does not include {capability.value}"
        return GateDecision(
            capability=capability,
            allowed=False,
            reason=reason,
            upgrade_required=True,
        )

    def require(self, account: Optional[Account], capabilities: Iterable[Capability]) -> None:
        """
        Evaluate every requested capability on its own.

        Raises:
            PremiumRequiredError: Listing each denied capability with its reason
        """
        denials = [
            decision
            for decision in (self.evaluate(account, c) for c in capabilities)
            if not decision.allowed
        ]
        if denials:
            raise PremiumRequiredError(denials)
