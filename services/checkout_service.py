"""
Checkout Service - builds Stripe Checkout sessions for subscriptions and one-time purchases
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from crud.user import UserRepository
from database_models import User
from models.payment import CheckoutSessionResult, OneTimeCheckoutRequest, SubscriptionCheckoutRequest
from models.stripe_events import CHECKOUT_MODE_PAYMENT, CHECKOUT_MODE_SUBSCRIPTION
from services.billing_errors import CheckoutSessionError, ProviderError, UserNotFoundError
from services.customer_service import CustomerService
from services.payment_provider import StripePaymentProvider

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Service class for creating checkout sessions.

    Every session carries metadata.user_id so the webhook can find the
    local user even before the customer id has been stored. Subscription
    sessions also carry metadata.plan_id as a fallback for the plan.
    """

    def __init__(self, db: AsyncSession, provider: StripePaymentProvider):
        self.user_repo = UserRepository(db)
        self.customers = CustomerService(db, provider)
        self.provider = provider

    async def create_subscription_checkout(
        self, user_id: int, request: SubscriptionCheckoutRequest
    ) -> CheckoutSessionResult:
        """
        Create a subscription-mode session for request.plan_id.

        Raises:
            UserNotFoundError, CustomerResolutionError, CheckoutSessionError
        """
        user = await self._get_user(user_id)
        customer_id = await self.customers.resolve_customer_id(user)

        return self._create_session(
            user,
            customer_id=customer_id,
            mode=CHECKOUT_MODE_SUBSCRIPTION,
            line_items=[{"price": request.plan_id, "quantity": 1}],
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            metadata={"user_id": str(user.id), "plan_id": request.plan_id},
        )

    async def create_one_time_checkout(
        self, user_id: int, request: OneTimeCheckoutRequest
    ) -> CheckoutSessionResult:
        """
        Create a payment-mode session with inline price data.

        Raises:
            UserNotFoundError, CustomerResolutionError, CheckoutSessionError
        """
        user = await self._get_user(user_id)
        customer_id = await self.customers.resolve_customer_id(user)

        line_item = {
            "price_data": {
                "currency": request.currency,
                "product_data": {"name": request.product_name},
                "unit_amount": request.amount,
            },
            "quantity": 1,
        }
        return self._create_session(
            user,
            customer_id=customer_id,
            mode=CHECKOUT_MODE_PAYMENT,
            line_items=[line_item],
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            metadata={"user_id": str(user.id)},
        )

    async def _get_user(self, user_id: int) -> User:
        user = await self.user_repo.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        return user

    def _create_session(self, user: User, **session_args) -> CheckoutSessionResult:
        try:
            session = self.provider.create_checkout_session(**session_args)
        except ProviderError as e:
            raise CheckoutSessionError(f"Error creating checkout session: {e}") from e
        logger.info(f"Created {session_args['mode']} checkout session {session.session_id} for user {user.id}")
        return session
