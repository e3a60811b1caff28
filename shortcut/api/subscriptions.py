"""
FastAPI Endpoints for Subscriptions

Plan listing, checkout, cancellation and the Stripe webhook.

The webhook always acknowledges a correctly signed delivery, even when
applying it fails: Stripe retries non-2xx responses and the bridge is
idempotent, so a failed handler is logged and left for reconciliation
instead of being retried forever.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.api.deps import get_billing_client, get_current_account
from shortcut.api.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    MessageResponse,
    PlanResponse,
    SubscriptionResponse,
    WebhookAck,
)
from shortcut.db.models import Account
from shortcut.db.session import get_session
from shortcut.services.billing import StripeBillingClient
from shortcut.services.billing_bridge import BillingBridge

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions")


@router.get("/plans", response_model=list[PlanResponse])
async def get_subscription_plans() -> list[PlanResponse]:
    return [PlanResponse(**plan) for plan in BillingBridge.list_plans()]


@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
    billing_client: StripeBillingClient = Depends(get_billing_client),
) -> CheckoutResponse:
    bridge = BillingBridge(session, billing_client)
    result = await bridge.create_checkout(account, body.plan_id)
    return CheckoutResponse(**result)


@router.post("/webhook", response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
    billing_client: StripeBillingClient = Depends(get_billing_client),
) -> WebhookAck:
    if not billing_client.is_configured:
        return WebhookAck(simulated=True)

    payload = await request.body()
    event = billing_client.construct_event(payload, request.headers.get("Stripe-Signature"))

    bridge = BillingBridge(session, billing_client)
    try:
        await bridge.handle_event(event)
    except Exception:
        logger.exception(
            "Failed to apply billing event %s (%s)", event.get("id"), event.get("type")
        )
        await session.rollback()

    return WebhookAck()


@router.get("/me", response_model=SubscriptionResponse)
async def get_user_subscription(
    account: Account = Depends(get_current_account),
) -> SubscriptionResponse:
    return SubscriptionResponse(**BillingBridge.describe(account))


@router.post("/cancel", response_model=MessageResponse)
async def cancel_subscription(
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
    billing_client: StripeBillingClient = Depends(get_billing_client),
) -> MessageResponse:
    result = await BillingBridge(session, billing_client).cancel(account)
    return MessageResponse(**result)
