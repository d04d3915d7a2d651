"""
Subscription reconciliation driven by verified Stripe webhook events
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Depends

from backend.utils.errors import SignatureInvalidError
from crud.webhook_event import WebhookEventLog, get_webhook_event_log
from models.user import SubscriptionStatus, User
from services.billing_service import BillingService, WebhookEvent, require_billing_service
from services.identity_service import IdentityService, get_identity_service

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
PAYMENT_FAILED = "invoice.payment_failed"


@dataclass
class WebhookOutcome:
    event_id: Optional[str]
    event_type: str
    applied: bool
    duplicate: bool = False


class SubscriptionReconciler:
    """
    Applies billing events to user subscription status.

    Once the signature checks out the event is always acknowledged, even if
    the state update fails, so Stripe does not keep redelivering it.
    """

    def __init__(self, billing: BillingService, identity: IdentityService, event_log: WebhookEventLog):
        self.billing = billing
        self.identity = identity
        self.event_log = event_log
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[bool]]] = {
            CHECKOUT_COMPLETED: self._on_checkout_completed,
            SUBSCRIPTION_DELETED: self._on_subscription_deleted,
            PAYMENT_FAILED: self._on_payment_failed,
        }

    async def handle_webhook(
        self,
        raw_body: bytes,
        signature_header: Optional[str],
        shared_secret: Optional[str],
    ) -> WebhookOutcome:
        if not signature_header or not shared_secret:
            raise SignatureInvalidError("Missing signature or secret")

        event = self.billing.construct_event(raw_body, signature_header, shared_secret)
        logger.info(f"Processing Stripe webhook event: {event.type} ({event.id})")

        handler = self._handlers.get(event.type)
        if handler is None:
            return WebhookOutcome(event_id=event.id, event_type=event.type, applied=False)

        recorded = False
        try:
            if event.id:
                if not await self.event_log.record(event.id, event.type):
                    logger.info(f"Skipping already processed event {event.id}")
                    return WebhookOutcome(event_id=event.id, event_type=event.type, applied=False, duplicate=True)
                recorded = True
            applied = await handler(event.data_object)
        except Exception as e:
            logger.error(f"Error processing webhook {event.type} ({event.id}): {e}", exc_info=True)
            if recorded:
                await self._release(event.id)
            applied = False

        return WebhookOutcome(event_id=event.id, event_type=event.type, applied=applied)

    async def _release(self, event_id: str) -> None:
        # A failed event must stay replayable from the Stripe dashboard
        try:
            await self.event_log.release(event_id)
        except Exception as e:
            logger.error(f"Could not release webhook event {event_id} after failure: {e}", exc_info=True)

    async def _on_checkout_completed(self, session: Dict[str, Any]) -> bool:
        metadata = session.get("metadata") or {}
        status = self.billing.status_for_price(metadata.get("price_id"))
        if status is None:
            logger.warning(f"Checkout {session.get('id')} completed without a known price_id; not updating any user")
            return False

        email = (
            metadata.get("email")
            or session.get("customer_email")
            or (session.get("customer_details") or {}).get("email")
        )
        if not email:
            logger.warning(f"Checkout {session.get('id')} completed without a customer email")
            return False

        user = await self.identity.resolve_or_create_user(email)
        if user.subscription_status == SubscriptionStatus.PRO_LIFETIME and status != SubscriptionStatus.PRO_LIFETIME:
            logger.info(f"User {user.id} holds a lifetime purchase; ignoring {status.value} checkout")
            return False
        await self.identity.set_subscription_status(user, status, stripe_customer_id=session.get("customer"))
        return True

    async def _on_subscription_deleted(self, subscription: Dict[str, Any]) -> bool:
        user = await self._find_subscriber(subscription)
        if user is None:
            logger.warning(f"Subscription {subscription.get('id')} deleted for an unknown customer")
            return False
        if user.subscription_status == SubscriptionStatus.PRO_LIFETIME:
            logger.info(f"User {user.id} holds a lifetime purchase; ignoring subscription deletion")
            return False

        await self.identity.set_subscription_status(user, SubscriptionStatus.FREE)
        return True

    async def _on_payment_failed(self, invoice: Dict[str, Any]) -> bool:
        logger.warning(
            f"Payment failed for customer {invoice.get('customer')} "
            f"(invoice {invoice.get('id')}, attempt {invoice.get('attempt_count')}); flagged for dunning"
        )
        return True

    async def _find_subscriber(self, subscription: Dict[str, Any]) -> Optional[User]:
        customer_id = subscription.get("customer")
        if customer_id:
            user = await self.identity.find_by_customer_id(customer_id)
            if user is not None:
                return user
        email = (subscription.get("metadata") or {}).get("email")
        if email:
            return await self.identity.find_user(email)
        return None


def get_subscription_reconciler(
    billing: BillingService = Depends(require_billing_service),
    identity: IdentityService = Depends(get_identity_service),
    event_log: WebhookEventLog = Depends(get_webhook_event_log),
) -> SubscriptionReconciler:
    return SubscriptionReconciler(billing, identity, event_log)
