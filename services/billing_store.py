"""
Billing Store - the only writer of billing_records.

Two primitives mutate a record, each as one UPDATE statement so readers
never observe a half-applied change:

- set_customer_data: provider customer id (write-once) and default
  payment method
- set_subscription_data: subscription id, plan, status and period end,
  always replaced together

Both are absolute sets, so replaying the same input converges. Writing to an
account without a record raises UserNotFoundError.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import BillingRecord, PERIOD_END_STATUSES
from services.billing_errors import UserNotFoundError

logger = logging.getLogger(__name__)


class BillingStore:
    """
    Mutation primitives and lookups for the local billing projection.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_user_id(self, user_id: int) -> Optional[BillingRecord]:
        result = await self.db.execute(
            select(BillingRecord)
            .where(BillingRecord.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_customer_id(self, customer_id: str) -> Optional[BillingRecord]:
        if not customer_id:
            return None
        result = await self.db.execute(
            select(BillingRecord)
            .where(BillingRecord.external_customer_id == customer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_customer_data(
        self,
        user_id: int,
        customer_id: Optional[str],
        default_payment_method_id: Optional[str] = None,
    ) -> None:
        """
        Record the provider customer and optionally the default payment method.

        The customer id is only written while the record has none, so an
        established id never changes. default_payment_method_id of None
        leaves the stored value alone, "" clears it, anything else replaces it.
        """
        values = {"updated_at": datetime.utcnow()}
        if customer_id:
            values["external_customer_id"] = func.coalesce(
                BillingRecord.external_customer_id, customer_id
            )
        if default_payment_method_id is not None:
            values["default_payment_method_id"] = default_payment_method_id or None

        await self._update(user_id, values)

        if customer_id:
            record = await self.get_by_user_id(user_id)
            if record is not None and record.external_customer_id != customer_id:
                logger.warning(
                    f"User {user_id} already has customer {record.external_customer_id}; "
                    f"ignoring {customer_id}"
                )

    async def set_subscription_data(
        self,
        user_id: int,
        subscription_id: str,
        plan_id: str,
        status: str,
        period_end: Optional[datetime],
    ) -> None:
        """
        Replace all four subscription fields at once.

        Clearing a subscription is set_subscription_data(user_id, "", "", "canceled", None).
        A period end is only kept for active, trialing and past_due.
        """
        if not status:
            raise ValueError("subscription status is required")
        if status not in PERIOD_END_STATUSES:
            period_end = None

        values = {
            "subscription_id": subscription_id or None,
            "current_plan_id": plan_id or None,
            "subscription_status": status,
            "subscription_period_end": period_end,
            "updated_at": datetime.utcnow(),
        }
        await self._update(user_id, values)
        logger.info(
            f"Billing record for user {user_id}: subscription={subscription_id or '-'} "
            f"plan={plan_id or '-'} status={status}"
        )

    async def _update(self, user_id: int, values: dict) -> None:
        await self.db.flush()
        result = await self.db.execute(
            update(BillingRecord)
            .where(BillingRecord.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            # Every account gets its record at signup
            raise UserNotFoundError(f"No billing record for user {user_id}")
