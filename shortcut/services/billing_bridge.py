"""
Billing Bridge

Translates subscription lifecycle events from Stripe into account changes
and drives checkout / cancellation on behalf of a user.

Events handled:
- checkout.session.completed: activate the purchased tier for one period
- invoice.paid: extend the subscription by one period on renewal
- customer.subscription.deleted: downgrade to free

Idempotency: the id of every applied event is stored in the same commit as
the account change. Replays are skipped, and a concurrent duplicate
delivery loses on the primary key instead of being applied twice.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.core.exceptions import AccountNotFoundError, BillingProviderError, ValidationError
from shortcut.core.setting import Settings, settings as default_settings
from shortcut.core.tiers import Tier, entitlements_for, paid_tier
from shortcut.db.models import Account, ProcessedBillingEvent, utcnow
from shortcut.services.account_service import AccountService
from shortcut.services.billing import StripeBillingClient

logger = logging.getLogger(__name__)

PLANS = [
    {
        "id": Tier.PREMIUM.value,
        "name": "Premium",
        "description": "Access to every premium feature",
        "price": 9.99,
        "currency": "EUR",
        "interval": "month",
        "features": [
            "Custom URLs",
            "Detailed click analytics",
            "Password protection",
            "Link expiration",
            "Up to 100 URLs",
            "Priority support",
        ],
    },
    {
        "id": Tier.ENTERPRISE.value,
        "name": "Enterprise",
        "description": "For teams and companies",
        "price": 29.99,
        "currency": "EUR",
        "interval": "month",
        "features": [
            "Custom URLs",
            "Detailed click analytics",
            "Password protection",
            "Link expiration",
            "Up to 1000 URLs",
            "24/7 priority support",
        ],
    },
]

CANCEL_MESSAGE = "Subscription will be canceled at the end of the billing period"


class BillingBridge:
    """Subscription lifecycle for accounts."""

    def __init__(
        self,
        session: AsyncSession,
        billing_client: StripeBillingClient,
        config: Settings = default_settings,
    ):
        self.session = session
        self.billing = billing_client
        self.config = config
        self.accounts = AccountService(session)
        self.period = timedelta(days=config.BILLING_PERIOD_DAYS)
        self._handlers: dict[str, Callable[[dict], Awaitable[None]]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "invoice.paid": self._on_invoice_paid,
            "customer.subscription.deleted": self._on_subscription_deleted,
        }

    @staticmethod
    def list_plans() -> list[dict]:
        return [
            {**plan, "max_links": entitlements_for(Tier(plan["id"])).max_links}
            for plan in PLANS
        ]

    @staticmethod
    def describe(account: Account) -> dict:
        """Subscription status as shown to the account owner."""
        return {
            "subscription": account.tier.value,
            "subscription_expiry": account.subscription_expiry,
            "features": account.entitlements.as_dict(),
        }

    async def create_checkout(self, account: Account, plan_id: str) -> dict:
        """
        Start a subscription checkout for ``plan_id``.

        Without Stripe credentials in development the plan is activated
        directly so the rest of the app can be exercised locally.

        Raises:
            ValidationError: Unknown or non-paid plan
            BillingProviderError: Stripe unavailable or misconfigured
        """
        try:
            tier = paid_tier(plan_id)
        except ValueError:
            raise ValidationError(f"Invalid plan: '{plan_id}'")

        if not self.billing.is_configured:
            if not self.config.is_development:
                raise BillingProviderError("Stripe is not configured")
            self._activate(account, tier, utcnow())
            await self.session.commit()
            logger.info("Simulated %s checkout for account %s", tier.value, account.id)
            return {
                "success": True,
                "simulated": True,
                "message": "Simulated subscription activated in development mode",
                "redirect_url": f"{self.config.FRONTEND_URL}/dashboard",
            }

        if not account.billing_customer_id:
            account.billing_customer_id = await self.billing.create_customer(
                email=account.email, name=account.name, account_id=account.id
            )
            await self.session.commit()

        checkout = await self.billing.create_checkout_session(
            customer_id=account.billing_customer_id,
            tier=tier,
            account_id=account.id,
            success_url=f"{self.config.FRONTEND_URL}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.config.FRONTEND_URL}/pricing",
        )
        return {"session_id": checkout.id, "url": checkout.url}

    async def cancel(self, account: Account) -> dict:
        """
        Schedule cancellation at the end of the paid period.

        The downgrade itself arrives as ``customer.subscription.deleted``
        (or through lazy expiry once the period is over).

        Raises:
            ValidationError: No active subscription to cancel
        """
        if not self.billing.is_configured and self.config.is_development:
            return {"message": CANCEL_MESSAGE}

        if not account.billing_customer_id:
            raise ValidationError("No active subscription found")

        subscription_id = await self.billing.cancel_subscription_at_period_end(
            account.billing_customer_id
        )
        if subscription_id is None:
            raise ValidationError("No active subscription found")
        return {"message": CANCEL_MESSAGE}

    async def handle_event(self, event: dict) -> bool:
        """
        Apply a verified payment-provider event.

        Returns:
            True when the event changed state, False when it was a replay or
            an event type this service does not act on
        """
        event_id = event["id"]
        event_type = event["type"]

        if await self.session.get(ProcessedBillingEvent, event_id) is not None:
            logger.info("Skipping already processed event %s (%s)", event_id, event_type)
            return False

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled event type %s", event_type)
            return False

        await handler(event["data"]["object"])

        self.session.add(ProcessedBillingEvent(event_id=event_id, event_type=event_type))
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.info("Event %s was applied by a concurrent delivery", event_id)
            return False

        logger.info("Processed billing event %s (%s)", event_id, event_type)
        return True

    async def _on_checkout_completed(self, checkout: dict) -> None:
        metadata = checkout.get("metadata") or {}
        account_id = metadata.get("user_id")
        plan_id = metadata.get("plan_id")
        if not account_id or not plan_id:
            logger.error("Checkout session %s without account or plan metadata", checkout.get("id"))
            return

        try:
            account = await self.accounts.get_account(account_id)
        except AccountNotFoundError:
            logger.error("Checkout completed for unknown account %s", account_id)
            return

        tier = paid_tier(plan_id)
        customer_id = checkout.get("customer")
        if customer_id and not account.billing_customer_id:
            account.billing_customer_id = customer_id

        self._activate(account, tier, utcnow())

    async def _on_invoice_paid(self, invoice: dict) -> None:
        if invoice.get("billing_reason") == "subscription_create":
            # First invoice of a new subscription; checkout completion covers it
            return

        account = await self._account_for_customer(invoice.get("customer"))
        if account is None:
            return

        now = utcnow()
        if account.tier.is_paid:
            self._extend(account, now)
            return

        # Renewal for an account whose period already lapsed: re-activate
        plan_id = _subscription_plan(invoice)
        if plan_id is None:
            logger.warning(
                "Invoice paid for free account %s without plan metadata", account.id
            )
            return
        self._activate(account, paid_tier(plan_id), now)

    async def _on_subscription_deleted(self, subscription: dict) -> None:
        account = await self._account_for_customer(subscription.get("customer"))
        if account is None:
            return
        account.downgrade()
        logger.info("Account %s downgraded to free after cancellation", account.id)

    async def _account_for_customer(self, customer_id: Optional[str]) -> Optional[Account]:
        if not customer_id:
            logger.error("Billing event without a customer reference")
            return None
        account = await self.accounts.find_by_billing_customer(customer_id)
        if account is None:
            logger.error("No account for billing customer %s", customer_id)
        return account

    def _activate(self, account: Account, tier: Tier, now: datetime) -> None:
        account.activate(tier, now + self.period)
        logger.info(
            "Account %s activated on %s until %s",
            account.id, tier.value, account.subscription_expiry,
        )

    def _extend(self, account: Account, now: datetime) -> None:
        start = max(account.subscription_expiry or now, now)
        account.activate(account.tier, start + self.period)
        logger.info(
            "Account %s renewed until %s", account.id, account.subscription_expiry
        )


def _subscription_plan(invoice: dict) -> Optional[str]:
    details = invoice.get("subscription_details") or {}
    metadata = details.get("metadata") or {}
    return metadata.get("plan_id")
