"""
Customer Service - maps a local user to a Stripe customer, creating it lazily
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import User
from models.payment import CustomerAddress, CustomerParams
from services.billing_errors import CustomerResolutionError, ProviderError, UserNotFoundError
from services.billing_store import BillingStore
from services.payment_provider import StripePaymentProvider

logger = logging.getLogger(__name__)


def _phone(user: User) -> Optional[str]:
    if user.mobile and user.country_code:
        return f"{user.country_code}{user.mobile}"
    return None


def _address(user: User) -> Optional[CustomerAddress]:
    # All-or-nothing: a partial address is never sent
    if not (user.address and user.city and user.country):
        return None
    return CustomerAddress(
        line1=user.address,
        city=user.city,
        country=user.country,
        postal_code=user.postal_code or None,
    )


def customer_params_for(user: User) -> CustomerParams:
    """Build Stripe customer parameters from a user's profile."""
    return CustomerParams(
        name=user.name,
        email=user.email,
        phone=_phone(user),
        address=_address(user),
        metadata={"user_id": str(user.id)},
    )


class CustomerService:
    """
    Resolves the Stripe customer id for a user.
    """

    def __init__(self, db: AsyncSession, provider: StripePaymentProvider):
        self.db = db
        self.store = BillingStore(db)
        self.provider = provider

    async def resolve_customer_id(self, user: User) -> str:
        """
        Return the user's Stripe customer id, creating the customer on first use.

        Raises:
            UserNotFoundError: the account has no billing record; Stripe is not called
            CustomerResolutionError: Stripe rejected or could not be reached,
                or the new id could not be stored. Nothing is written on failure.
        """
        record = await self.store.get_by_user_id(user.id)
        if record is None:
            raise UserNotFoundError(f"No billing record for user {user.id}")
        if record.external_customer_id:
            return record.external_customer_id

        try:
            customer_id = self.provider.create_customer(customer_params_for(user))
        except ProviderError as e:
            raise CustomerResolutionError(f"Error creating Stripe customer: {e}") from e

        try:
            await self.store.set_customer_data(user.id, customer_id)
            # Keep the customer even if the caller's later step fails
            await self.db.commit()
            record = await self.store.get_by_user_id(user.id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store customer {customer_id} for user {user.id}: {e}", exc_info=True)
            raise CustomerResolutionError(f"Error updating user data: {e}") from e

        logger.info(f"Created Stripe customer {customer_id} for user {user.id}")
        # A concurrent request may have stored its customer first; that one wins
        return record.external_customer_id
