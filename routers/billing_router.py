"""
Billing Router - Stripe checkout and webhook endpoints
Webhook is defined FIRST so it always receives the untouched raw body
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from backend.utils.responses import success_response
from config.settings import settings
from services.billing_service import BillingService, require_billing_service
from services.identity_service import normalize_email
from services.subscription_service import SubscriptionReconciler, get_subscription_reconciler

logger = logging.getLogger(__name__)

billing_router = APIRouter(prefix="/api", tags=["billing"])


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: Optional[str] = Field(default=None, alias="priceId")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")
    trial_days: Optional[int] = Field(default=0, alias="trialDays")
    email: Optional[str] = None


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST
@billing_router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    reconciler: SubscriptionReconciler = Depends(get_subscription_reconciler),
):
    """
    Handle Stripe webhook events with signature verification.

    Unverifiable requests get 400 and are never processed. Verified events are
    acknowledged with 200 whether or not the local update succeeded, so
    Stripe does not retry them.
    """
    # Raw body is required for signature verification
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    outcome = await reconciler.handle_webhook(payload, signature, settings.stripe_webhook_secret)
    if not outcome.applied and not outcome.duplicate:
        logger.info(f"Webhook {outcome.event_type} acknowledged without a state change")
    return success_response({"received": True})


@billing_router.post("/checkout")
async def create_checkout_session(
    payload: CheckoutRequest,
    billing: BillingService = Depends(require_billing_service),
):
    """
    Create a Stripe Checkout session for the monthly or lifetime plan.

    Returns:
        {"sessionId": ..., "url": ...}
    """
    email = normalize_email(payload.email) if payload.email else None
    session = billing.create_checkout_session(
        payload.price_id,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
        trial_days=payload.trial_days,
        email=email,
    )
    return success_response({"sessionId": session.session_id, "url": session.url})
