"""
Tests for the billing bridge and the Stripe client's webhook verification.

Stripe itself is never contacted: the bridge talks to FakeBillingClient and
webhook signatures are produced locally with the documented HMAC scheme.
"""

import hashlib
import hmac
import json
import time
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from shortcut.core.exceptions import BillingProviderError, ValidationError, WebhookSignatureError
from shortcut.core.setting import Settings
from shortcut.core.tiers import Tier
from shortcut.db.models import ProcessedBillingEvent, utcnow
from shortcut.services.billing import StripeBillingClient
from shortcut.services.billing_bridge import CANCEL_MESSAGE, BillingBridge

PERIOD = timedelta(days=30)


def event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def checkout_completed(event_id, account_id, plan_id="premium", customer="cus_123"):
    return event(event_id, "checkout.session.completed", {
        "id": "cs_test_1",
        "customer": customer,
        "metadata": {"user_id": account_id, "plan_id": plan_id},
    })


def invoice_paid(event_id, customer="cus_123", billing_reason="subscription_cycle", plan_id=None):
    invoice = {"id": "in_test_1", "customer": customer, "billing_reason": billing_reason}
    if plan_id:
        invoice["subscription_details"] = {"metadata": {"plan_id": plan_id}}
    return event(event_id, "invoice.paid", invoice)


def subscription_deleted(event_id, customer="cus_123"):
    return event(event_id, "customer.subscription.deleted", {"id": "sub_1", "customer": customer})


def sign(payload: bytes, secret: str, timestamp=None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class TestLifecycleEvents:
    @pytest.mark.asyncio
    async def test_checkout_completed_activates(self, session, billing_client, make_account):
        account = await make_account()
        bridge = BillingBridge(session, billing_client)

        before = utcnow()
        applied = await bridge.handle_event(checkout_completed("evt_1", account.id))

        assert applied is True
        await session.refresh(account)
        assert account.tier == Tier.PREMIUM
        assert account.billing_customer_id == "cus_123"
        assert before + PERIOD <= account.subscription_expiry <= utcnow() + PERIOD
        assert account.entitlements.custom_aliases_enabled is True

    @pytest.mark.asyncio
    async def test_replayed_event_skipped(self, session, billing_client, make_account):
        account = await make_account()
        bridge = BillingBridge(session, billing_client)
        await bridge.handle_event(checkout_completed("evt_1", account.id))
        await session.refresh(account)
        first_expiry = account.subscription_expiry

        assert await bridge.handle_event(checkout_completed("evt_1", account.id)) is False

        await session.refresh(account)
        assert account.subscription_expiry == first_expiry
        stored = await session.execute(select(func.count()).select_from(ProcessedBillingEvent))
        assert stored.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_checkout_without_metadata_ignored(self, session, billing_client, make_account):
        account = await make_account()
        bridge = BillingBridge(session, billing_client)

        await bridge.handle_event(
            event("evt_1", "checkout.session.completed", {"id": "cs_1", "metadata": {}})
        )

        await session.refresh(account)
        assert account.tier == Tier.FREE

    @pytest.mark.asyncio
    async def test_invoice_paid_extends_from_current_expiry(
        self, session, billing_client, make_account
    ):
        expiry = utcnow() + timedelta(days=3)
        account = await make_account(
            tier=Tier.PREMIUM, expiry=expiry, billing_customer_id="cus_123"
        )
        bridge = BillingBridge(session, billing_client)

        assert await bridge.handle_event(invoice_paid("evt_2")) is True

        await session.refresh(account)
        assert account.tier == Tier.PREMIUM
        assert account.subscription_expiry == expiry + PERIOD

    @pytest.mark.asyncio
    async def test_first_invoice_left_to_checkout(self, session, billing_client, make_account):
        expiry = utcnow() + timedelta(days=30)
        account = await make_account(
            tier=Tier.PREMIUM, expiry=expiry, billing_customer_id="cus_123"
        )
        bridge = BillingBridge(session, billing_client)

        await bridge.handle_event(invoice_paid("evt_2", billing_reason="subscription_create"))

        await session.refresh(account)
        assert account.subscription_expiry == expiry

    @pytest.mark.asyncio
    async def test_invoice_paid_reactivates_lapsed_account(
        self, session, billing_client, make_account
    ):
        account = await make_account(billing_customer_id="cus_123")
        bridge = BillingBridge(session, billing_client)

        await bridge.handle_event(invoice_paid("evt_3", plan_id="enterprise"))

        await session.refresh(account)
        assert account.tier == Tier.ENTERPRISE
        assert account.subscription_expiry > utcnow() + PERIOD - timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_subscription_deleted_downgrades_once(
        self, session, billing_client, make_account
    ):
        account = await make_account(
            tier=Tier.PREMIUM,
            expiry=utcnow() + timedelta(days=10),
            billing_customer_id="cus_123",
        )
        bridge = BillingBridge(session, billing_client)

        assert await bridge.handle_event(subscription_deleted("evt_4")) is True
        assert await bridge.handle_event(subscription_deleted("evt_4")) is False

        await session.refresh(account)
        assert account.tier == Tier.FREE
        assert account.subscription_expiry is None

    @pytest.mark.asyncio
    async def test_unknown_customer(self, session, billing_client, make_account):
        account = await make_account(tier=Tier.PREMIUM, billing_customer_id="cus_123")
        bridge = BillingBridge(session, billing_client)

        await bridge.handle_event(subscription_deleted("evt_5", customer="cus_other"))

        await session.refresh(account)
        assert account.tier == Tier.PREMIUM

    @pytest.mark.asyncio
    async def test_unhandled_event_type(self, session, billing_client):
        bridge = BillingBridge(session, billing_client)
        assert await bridge.handle_event(event("evt_6", "customer.created", {})) is False
        assert await session.get(ProcessedBillingEvent, "evt_6") is None


class TestCheckout:
    @pytest.mark.asyncio
    async def test_creates_customer_once(self, session, billing_client, make_account):
        account = await make_account()
        bridge = BillingBridge(session, billing_client)

        result = await bridge.create_checkout(account, "premium")
        await bridge.create_checkout(account, "enterprise")

        assert result == {
            "session_id": "cs_test_1",
            "url": "https://checkout.stripe.test/cs_test_1",
        }
        assert billing_client.customers_created == [account.id]
        assert account.billing_customer_id == f"cus_{account.id[:8]}"
        assert [tier for _, tier, _ in billing_client.checkouts] == [
            Tier.PREMIUM, Tier.ENTERPRISE,
        ]
        # Nothing changes until the provider confirms payment
        assert account.tier == Tier.FREE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("plan_id", ["free", "gold", ""])
    async def test_invalid_plan(self, session, billing_client, make_account, plan_id):
        account = await make_account()
        with pytest.raises(ValidationError):
            await BillingBridge(session, billing_client).create_checkout(account, plan_id)

    @pytest.mark.asyncio
    async def test_simulated_in_development(self, session, billing_client, make_account):
        billing_client.configured = False
        account = await make_account()
        config = Settings(_env_file=None, ENV_SETTING="dev", FRONTEND_URL="http://app.test")

        result = await BillingBridge(session, billing_client, config).create_checkout(
            account, "enterprise"
        )

        assert result["simulated"] is True
        assert result["redirect_url"] == "http://app.test/dashboard"
        await session.refresh(account)
        assert account.tier == Tier.ENTERPRISE
        assert account.subscription_expiry is not None

    @pytest.mark.asyncio
    async def test_unconfigured_in_production(self, session, billing_client, make_account):
        billing_client.configured = False
        account = await make_account()
        config = Settings(_env_file=None, ENV_SETTING="production")

        with pytest.raises(BillingProviderError):
            await BillingBridge(session, billing_client, config).create_checkout(
                account, "premium"
            )
        assert account.tier == Tier.FREE


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_active(self, session, billing_client, make_account):
        account = await make_account(tier=Tier.PREMIUM, billing_customer_id="cus_123")

        result = await BillingBridge(session, billing_client).cancel(account)

        assert result == {"message": CANCEL_MESSAGE}
        assert billing_client.cancellations == ["cus_123"]
        # Downgrade waits for the provider's deletion event
        assert account.tier == Tier.PREMIUM

    @pytest.mark.asyncio
    async def test_cancel_without_customer(self, session, billing_client, make_account):
        account = await make_account()
        with pytest.raises(ValidationError, match="No active subscription"):
            await BillingBridge(session, billing_client).cancel(account)

    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, session, billing_client, make_account):
        billing_client.has_active_subscription = False
        account = await make_account(billing_customer_id="cus_123")
        with pytest.raises(ValidationError):
            await BillingBridge(session, billing_client).cancel(account)


def test_plans_listing():
    plans = {plan["id"]: plan for plan in BillingBridge.list_plans()}
    assert set(plans) == {"premium", "enterprise"}
    assert plans["premium"]["max_links"] == 100
    assert plans["enterprise"]["max_links"] == 1000
    assert plans["premium"]["price"] == 9.99


class TestStripeClient:
    SECRET = "whsec_test_secret"

    def make_client(self, **overrides):
        params = {
            "api_key": "sk_test_123",
            "webhook_secret": self.SECRET,
            "price_ids": {Tier.PREMIUM: "price_premium", Tier.ENTERPRISE: None},
        }
        params.update(overrides)
        return StripeBillingClient(**params)

    def test_is_configured(self):
        assert self.make_client().is_configured
        assert not self.make_client(api_key=None).is_configured
        assert not self.make_client(api_key="pk_test_123").is_configured

    def test_price_for(self):
        client = self.make_client()
        assert client.price_for(Tier.PREMIUM) == "price_premium"
        with pytest.raises(BillingProviderError):
            client.price_for(Tier.ENTERPRISE)

    def test_construct_event_valid_signature(self):
        payload = json.dumps(subscription_deleted("evt_1")).encode("utf-8")
        event_dict = self.make_client().construct_event(payload, sign(payload, self.SECRET))
        assert event_dict["id"] == "evt_1"
        assert event_dict["type"] == "customer.subscription.deleted"
        assert isinstance(event_dict["data"]["object"], dict)
        assert event_dict["data"]["object"]["customer"] == "cus_123"

    def test_construct_event_rejects_malformed_payload(self):
        payload = b"not json"
        with pytest.raises(WebhookSignatureError, match="malformed"):
            self.make_client().construct_event(payload, sign(payload, self.SECRET))

    def test_construct_event_rejects_bad_signature(self):
        payload = json.dumps(subscription_deleted("evt_1")).encode("utf-8")
        with pytest.raises(WebhookSignatureError):
            self.make_client().construct_event(payload, sign(payload, "whsec_wrong"))

    def test_construct_event_rejects_tampered_payload(self):
        payload = json.dumps(subscription_deleted("evt_1")).encode("utf-8")
        signature = sign(payload, self.SECRET)
        tampered = payload.replace(b"cus_123", b"cus_999")
        with pytest.raises(WebhookSignatureError):
            self.make_client().construct_event(tampered, signature)

    def test_construct_event_requires_signature_and_secret(self):
        payload = b"{}"
        with pytest.raises(WebhookSignatureError):
            self.make_client().construct_event(payload, None)
        with pytest.raises(WebhookSignatureError):
            self.make_client(webhook_secret=None).construct_event(payload, sign(payload, "x"))

    @pytest.mark.asyncio
    async def test_calls_refused_when_unconfigured(self):
        with pytest.raises(BillingProviderError):
            await self.make_client(api_key=None).create_customer("a@b.co", "A", "acc")
