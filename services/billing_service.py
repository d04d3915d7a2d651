"""
Billing Service - Stripe checkout sessions and webhook verification
"""

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import stripe
from fastapi import Depends

from backend.utils.errors import (
    ConfigurationError,
    GatewayError,
    InvalidPriceError,
    SignatureInvalidError,
    ValidationError,
)
from config.settings import settings
from models.user import SubscriptionStatus

logger = logging.getLogger(__name__)

MODE_SUBSCRIPTION = "subscription"
MODE_PAYMENT = "payment"


@dataclass
class GatewaySession:
    id: str
    url: Optional[str]


@dataclass
class CheckoutSession:
    session_id: str
    url: Optional[str]
    mode: str
    trial_days: Optional[int] = None


@dataclass
class WebhookEvent:
    id: Optional[str]
    type: str
    data_object: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """External payment processor integration."""

    def create_checkout_session(self, params: Dict[str, Any]) -> GatewaySession:
        ...

    def construct_event(self, payload: bytes, signature: str, secret: str) -> WebhookEvent:
        ...


class StripeGateway:
    """
    Thin wrapper over the Stripe SDK.
    The API key is passed per request so nothing is written to the global
    ``stripe.api_key``.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key

    def create_checkout_session(self, params: Dict[str, Any]) -> GatewaySession:
        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session: {e}", exc_info=True)
            raise GatewayError("Failed to create checkout session") from e
        return GatewaySession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: str, secret: str) -> WebhookEvent:
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Stripe webhook signature verification failed: {e}")
            raise SignatureInvalidError("Invalid signature") from e
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise SignatureInvalidError("Invalid payload") from e

        # The raw body is authentic at this point; work on plain dicts from here on
        body = json.loads(payload)
        return WebhookEvent(
            id=body.get("id"),
            type=body.get("type", ""),
            data_object=(body.get("data") or {}).get("object") or {},
        )


class BillingService:
    """
    Creates checkout sessions for the two purchasable plans and verifies
    webhook payloads. Holds the explicit price -> subscription status map the
    reconciler uses.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        monthly_price_id: str,
        lifetime_price_id: str,
        public_url: str,
    ):
        if not monthly_price_id or not lifetime_price_id:
            raise ConfigurationError("Both monthly and lifetime price ids must be configured")
        self.gateway = gateway
        self.monthly_price_id = monthly_price_id
        self.lifetime_price_id = lifetime_price_id
        self.public_url = public_url.rstrip("/")
        self._status_by_price = {
            monthly_price_id: SubscriptionStatus.PRO_MONTHLY,
            lifetime_price_id: SubscriptionStatus.PRO_LIFETIME,
        }

    def mode_for_price(self, price_id: Optional[str]) -> str:
        if price_id == self.monthly_price_id:
            return MODE_SUBSCRIPTION
        if price_id == self.lifetime_price_id:
            return MODE_PAYMENT
        raise InvalidPriceError("Invalid price ID")

    def status_for_price(self, price_id: Optional[str]) -> Optional[SubscriptionStatus]:
        if not price_id:
            return None
        return self._status_by_price.get(price_id)

    def create_checkout_session(
        self,
        price_id: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        trial_days: Optional[int] = 0,
        email: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Create a Stripe Checkout session for an allow-listed price.

        The monthly price opens a subscription (optionally with a trial), the
        lifetime price a one-time payment. The price id and customer email are
        stored in the session metadata so the completion webhook can be mapped
        back to a user and plan.
        """
        mode = self.mode_for_price(price_id)
        trial_days = trial_days or 0
        if trial_days < 0:
            raise ValidationError("trialDays must be zero or positive")

        metadata = {"price_id": price_id}
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": mode,
            "success_url": success_url or f"{self.public_url}/?payment=success",
            "cancel_url": cancel_url or f"{self.public_url}/?payment=cancelled",
        }
        if email:
            params["customer_email"] = email
            metadata["email"] = email
        params["metadata"] = metadata

        applied_trial = None
        if mode == MODE_SUBSCRIPTION:
            subscription_data: Dict[str, Any] = {"metadata": dict(metadata)}
            if trial_days > 0:
                subscription_data["trial_period_days"] = trial_days
                applied_trial = trial_days
            params["subscription_data"] = subscription_data

        session = self.gateway.create_checkout_session(params)
        logger.info(f"Created {mode} checkout session {session.id}")
        return CheckoutSession(session_id=session.id, url=session.url, mode=mode, trial_days=applied_trial)

    def construct_event(self, payload: bytes, signature: str, secret: str) -> WebhookEvent:
        return self.gateway.construct_event(payload, signature, secret)


@lru_cache(maxsize=1)
def get_billing_service() -> Optional[BillingService]:
    """
    Build the billing service once. Returns None when STRIPE_SECRET_KEY is
    unset so the app still starts with payments disabled.
    """
    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY is not set. Payments are disabled.")
        return None
    return BillingService(
        gateway=StripeGateway(settings.stripe_secret_key),
        monthly_price_id=settings.stripe_pro_monthly_price_id,
        lifetime_price_id=settings.stripe_pro_lifetime_price_id,
        public_url=settings.base_url,
    )


def require_billing_service(
    service: Optional[BillingService] = Depends(get_billing_service),
) -> BillingService:
    if service is None:
        raise ConfigurationError("Payments not configured")
    return service
