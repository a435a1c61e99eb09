"""
Webhook Service - applies verified Stripe events to the billing projection.

Stripe delivers at least once and in no particular order, so every
handler writes absolute values through BillingStore and is safe to run
again. Events that cannot be acted on (unpaid checkout, unknown user,
uninteresting type) are logged and acknowledged, never raised.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database_models import BillingRecord, SUBSCRIPTION_STATUS_CANCELED
from models.stripe_events import (
    CHECKOUT_MODE_SUBSCRIPTION,
    PAYMENT_STATUS_PAID,
    CheckoutSessionCompleted,
    PaymentMethodAttached,
    StripeEvent,
    SubscriptionChanged,
    SubscriptionDeleted,
    UnknownEvent,
    decode_event,
)
from services.billing_errors import ProviderError
from services.billing_store import BillingStore
from services.payment_provider import StripePaymentProvider

logger = logging.getLogger(__name__)


class WebhookReconciler:
    """
    Verifies, decodes and dispatches Stripe webhook deliveries.
    """

    def __init__(self, db: AsyncSession, provider: StripePaymentProvider):
        self.store = BillingStore(db)
        self.provider = provider
        self._handlers = {
            CheckoutSessionCompleted: self._on_checkout_completed,
            SubscriptionChanged: self._on_subscription_changed,
            SubscriptionDeleted: self._on_subscription_deleted,
            PaymentMethodAttached: self._on_payment_method_attached,
            UnknownEvent: self._on_unknown,
        }

    async def process(self, payload: bytes, signature_header: Optional[str]) -> StripeEvent:
        """
        Verify the signature, then decode and apply the event.

        Raises:
            WebhookSignatureError: the payload is not parsed at all
            WebhookPayloadError: verified but undecodable payload
        """
        self.provider.verify_webhook_signature(payload, signature_header)
        event = decode_event(payload)
        logger.info(f"Processing Stripe webhook event: {event.type} ({event.id})")
        await self.apply(event)
        return event

    async def apply(self, event: StripeEvent) -> None:
        await self._handlers[type(event)](event)

    async def _on_checkout_completed(self, event: CheckoutSessionCompleted) -> None:
        session = event.session

        # The customer may have been created in this very checkout, so the
        # user is found through metadata rather than the customer id
        user_id = _parse_user_id(session.metadata.get("user_id"))
        if user_id is None:
            logger.info(f"Checkout session {session.id} has no usable user_id in metadata; ignoring")
            return

        if session.payment_status != PAYMENT_STATUS_PAID:
            logger.info(f"Checkout session {session.id} payment status is {session.payment_status!r}; ignoring")
            return

        record = await self.store.get_by_user_id(user_id)
        if record is None:
            logger.warning(f"Checkout session {session.id} references unknown user {user_id}; ignoring")
            return

        if not session.customer:
            logger.warning(f"Checkout session {session.id} has no customer; ignoring")
            return

        if not record.external_customer_id:
            await self.store.set_customer_data(user_id, session.customer)
        customer_id = record.external_customer_id or session.customer

        if session.mode == CHECKOUT_MODE_SUBSCRIPTION and session.subscription:
            try:
                # The event only carries a reference to the subscription
                subscription = self.provider.retrieve_subscription(session.subscription)
            except ProviderError as e:
                logger.error(f"Error retrieving subscription {session.subscription}: {e}")
                return

            plan_id = subscription.plan_id or session.metadata.get("plan_id", "")
            await self.store.set_subscription_data(
                user_id,
                subscription.id,
                plan_id,
                subscription.status,
                subscription.current_period_end,
            )
        elif session.mode != CHECKOUT_MODE_SUBSCRIPTION:
            # TODO: persist one-time purchases once there is a product decision on how they are tracked
            logger.info(f"One-time checkout session {session.id} paid by user {user_id}")

        if not record.default_payment_method_id:
            try:
                payment_method_id = self.provider.get_default_payment_method(customer_id)
            except ProviderError as e:
                logger.warning(f"Could not look up default payment method for {customer_id}: {e}")
                return
            if payment_method_id:
                await self.store.set_customer_data(user_id, customer_id, payment_method_id)

    async def _on_subscription_changed(self, event: SubscriptionChanged) -> None:
        subscription = event.subscription
        record = await self._record_for_customer(event, subscription.customer)
        if record is None:
            return

        await self.store.set_subscription_data(
            record.user_id,
            subscription.id,
            subscription.plan_id(),
            subscription.status,
            subscription.period_end(),
        )

    async def _on_subscription_deleted(self, event: SubscriptionDeleted) -> None:
        record = await self._record_for_customer(event, event.subscription.customer)
        if record is None:
            return

        await self.store.set_subscription_data(record.user_id, "", "", SUBSCRIPTION_STATUS_CANCELED, None)

    async def _on_payment_method_attached(self, event: PaymentMethodAttached) -> None:
        payment_method = event.payment_method
        record = await self._record_for_customer(event, payment_method.customer)
        if record is None:
            return

        # First attached method becomes the default; an existing default is kept
        if not record.default_payment_method_id:
            await self.store.set_customer_data(record.user_id, payment_method.customer, payment_method.id)

    async def _on_unknown(self, event: UnknownEvent) -> None:
        logger.debug(f"Ignoring unhandled Stripe event type {event.type}")

    async def _record_for_customer(self, event: StripeEvent, customer_id: Optional[str]) -> Optional[BillingRecord]:
        if not customer_id:
            logger.info(f"Event {event.id} ({event.type}) has no customer attached; ignoring")
            return None
        record = await self.store.get_by_customer_id(customer_id)
        if record is None:
            logger.info(f"No user with Stripe customer {customer_id} for event {event.id}; ignoring")
        return record


def _parse_user_id(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
