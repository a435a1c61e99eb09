from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base


# Subscription status values stored on a billing record
SUBSCRIPTION_STATUS_NONE = "none"
SUBSCRIPTION_STATUS_ACTIVE = "active"
SUBSCRIPTION_STATUS_TRIALING = "trialing"
SUBSCRIPTION_STATUS_PAST_DUE = "past_due"
SUBSCRIPTION_STATUS_CANCELED = "canceled"

# Statuses for which a period end is meaningful
PERIOD_END_STATUSES = frozenset({
    SUBSCRIPTION_STATUS_ACTIVE,
    SUBSCRIPTION_STATUS_TRIALING,
    SUBSCRIPTION_STATUS_PAST_DUE,
})

# Statuses that grant access to paid features
SUBSCRIBED_STATUSES = frozenset({
    SUBSCRIPTION_STATUS_ACTIVE,
    SUBSCRIPTION_STATUS_TRIALING,
})


class User(Base):
    """
    Account owner. Profile fields double as the source for the
    payment provider customer (name, email, phone, address).
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    date_of_birth = Column(Date, nullable=False)
    mobile = Column(String(15), nullable=True)
    country_code = Column(String(5), nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)

    billing = relationship("BillingRecord", back_populates="user", uselist=False, lazy="noload")


class BillingRecord(Base):
    """
    Local projection of a user's payment provider identity and subscription.
    Only services.billing_store.BillingStore writes these columns.
    """
    __tablename__ = "billing_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    external_customer_id = Column(String, unique=True, nullable=True, index=True)
    default_payment_method_id = Column(String, nullable=True)
    current_plan_id = Column(String, nullable=True)
    subscription_id = Column(String, nullable=True)
    subscription_status = Column(String, nullable=False, default=SUBSCRIPTION_STATUS_NONE)
    subscription_period_end = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="billing", lazy="noload")

    def is_subscribed(self) -> bool:
        return self.subscription_status in SUBSCRIBED_STATUSES


class BlacklistedToken(Base):
    """Bearer tokens revoked at logout, kept until they would have expired anyway."""
    __tablename__ = "blacklisted_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
