"""
Subscription Service - read and cancel the current user's subscription.

Reads prefer live Stripe data and fall back to the local projection when
Stripe is unavailable. Cancellation never falls back.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from database_models import BillingRecord, SUBSCRIBED_STATUSES
from models.payment import CancelSubscriptionResponse, SubscriptionDetails, SubscriptionResponse
from services.billing_errors import NoActiveSubscriptionError, ProviderError, UserNotFoundError
from services.billing_store import BillingStore
from services.payment_provider import StripePaymentProvider

logger = logging.getLogger(__name__)

CANCEL_MESSAGE = "Subscription will be canceled at the end of the current billing period"


class SubscriptionService:

    def __init__(self, db: AsyncSession, provider: StripePaymentProvider):
        self.store = BillingStore(db)
        self.provider = provider

    async def _get_record(self, user_id: int) -> BillingRecord:
        record = await self.store.get_by_user_id(user_id)
        if record is None:
            raise UserNotFoundError("User not found")
        return record

    async def get_subscription(self, user_id: int) -> SubscriptionResponse:
        record = await self._get_record(user_id)
        if not record.subscription_id:
            return SubscriptionResponse(has_subscription=False)

        try:
            live = self.provider.retrieve_subscription(record.subscription_id)
        except ProviderError as e:
            logger.warning(f"Serving local subscription state for user {user_id}: {e}")
            return SubscriptionResponse(
                has_subscription=record.is_subscribed(),
                plan_id=record.current_plan_id,
                status=record.subscription_status,
                current_period_end=record.subscription_period_end,
            )

        return SubscriptionResponse(
            has_subscription=live.status in SUBSCRIBED_STATUSES,
            subscription_id=live.id,
            plan_id=live.plan_id or record.current_plan_id,
            status=live.status,
            cancel_at_period_end=live.cancel_at_period_end,
            current_period_end=live.current_period_end,
        )

    async def cancel_subscription(self, user_id: int) -> CancelSubscriptionResponse:
        """
        Ask Stripe to cancel at period end, then store what Stripe returned.

        Raises:
            UserNotFoundError: no billing record for the user
            NoActiveSubscriptionError: nothing to cancel; Stripe is not called
            ProviderError: Stripe rejected or could not be reached
        """
        record = await self._get_record(user_id)
        if not record.subscription_id:
            raise NoActiveSubscriptionError()

        subscription = self.provider.cancel_subscription_at_period_end(record.subscription_id)
        await self.store.set_subscription_data(
            user_id,
            subscription.id,
            subscription.plan_id or record.current_plan_id or "",
            subscription.status,
            subscription.current_period_end,
        )
        logger.info(f"Subscription {subscription.id} for user {user_id} set to cancel at period end")

        return CancelSubscriptionResponse(
            message=CANCEL_MESSAGE,
            subscription=SubscriptionDetails(
                id=subscription.id,
                status=subscription.status,
                cancel_at_period_end=subscription.cancel_at_period_end,
                current_period_end=subscription.current_period_end,
            ),
        )
