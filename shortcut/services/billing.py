"""
Stripe Billing Client

A thin, explicitly constructed handle around the Stripe SDK. One instance is
built at process start from settings and handed to whatever needs it; the
API key travels with every call instead of living in ``stripe.api_key``.

The SDK is synchronous, so calls run in Starlette's thread pool to keep the
event loop free.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import stripe
from starlette.concurrency import run_in_threadpool

from shortcut.core.exceptions import BillingProviderError, WebhookSignatureError
from shortcut.core.setting import Settings
from shortcut.core.tiers import Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


class StripeBillingClient:
    """Payment-provider operations used by the billing bridge."""

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        price_ids: dict[Tier, Optional[str]],
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._price_ids = dict(price_ids)

    @classmethod
    def from_settings(cls, config: Settings) -> "StripeBillingClient":
        return cls(
            api_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            price_ids={
                Tier.PREMIUM: config.STRIPE_PREMIUM_PRICE_ID,
                Tier.ENTERPRISE: config.STRIPE_ENTERPRISE_PRICE_ID,
            },
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_key.startswith("sk_"))

    def price_for(self, tier: Tier) -> str:
        price_id = self._price_ids.get(tier)
        if not price_id:
            logger.error("Stripe price ID not configured for %s", tier.value)
            raise BillingProviderError(f"no price configured for plan '{tier.value}'")
        return price_id

    async def create_customer(self, email: str, name: str, account_id: str) -> str:
        customer = await self._call(
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"user_id": account_id},
        )
        logger.info("Created Stripe customer %s for account %s", customer.id, account_id)
        return customer.id

    async def create_checkout_session(
        self,
        customer_id: str,
        tier: Tier,
        account_id: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        metadata = {"user_id": account_id, "plan_id": tier.value}
        session = await self._call(
            stripe.checkout.Session.create,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": self.price_for(tier), "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return CheckoutSession(id=session.id, url=session.url)

    async def cancel_subscription_at_period_end(self, customer_id: str) -> Optional[str]:
        """
        Schedule the customer's active subscription to end with its period.

        Returns:
            The subscription id, or None when the customer has no active one
        """
        subscriptions = await self._call(
            stripe.Subscription.list,
            customer=customer_id,
            status="active",
            limit=1,
        )
        if not subscriptions.data:
            return None

        subscription_id = subscriptions.data[0].id
        await self._call(
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
        )
        logger.info("Subscription %s set to cancel at period end", subscription_id)
        return subscription_id

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        Verify a webhook delivery and return the event as a plain dict.

        Raises:
            WebhookSignatureError: Missing/invalid signature or unparsable payload
        """
        if not self._webhook_secret:
            raise WebhookSignatureError("webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e))
        except ValueError as e:
            # Undecodable bytes or invalid JSON
            raise WebhookSignatureError(f"malformed payload: {e}")
        return event.to_dict()

    async def _call(self, method, *args, **params):
        if not self.is_configured:
            raise BillingProviderError("Stripe is not configured")
        try:
            return await run_in_threadpool(method, *args, api_key=self._api_key, **params)
        except stripe.StripeError as e:
            logger.error("Stripe error in %s: %s", getattr(method, "__qualname__", method), e)
            raise BillingProviderError(str(e), original_error=e)
