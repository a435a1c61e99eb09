"""
Pytest configuration and fixtures for testing
"""
import hashlib
import hmac
import os
import time
from datetime import date

os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import database_models  # noqa: F401
from auth_utils import create_jwt
from crud.user import UserRepository
from models.payment import CheckoutSessionResult, CustomerParams, ProviderSubscription
from services.billing_errors import ProviderError
from services.payment_provider import StripePaymentProvider, get_payment_provider

# In-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for payload"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class FakePaymentProvider(StripePaymentProvider):
    """
    Stand-in for Stripe. Keeps the real webhook signature check and
    records every outbound call in self.calls.
    """

    def __init__(self):
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.calls = []
        self.failing = set()
        self.subscriptions = {}
        self.default_payment_methods = {}
        self.customer_counter = 0
        self.session_counter = 0

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.failing:
            raise ProviderError(f"{name} unavailable")

    def call_names(self):
        return [call[0] for call in self.calls]

    def create_customer(self, params: CustomerParams) -> str:
        self._record("create_customer", params)
        self.customer_counter += 1
        return f"cus_test_{self.customer_counter}"

    def create_checkout_session(self, customer_id, mode, line_items, success_url, cancel_url, metadata):
        self._record(
            "create_checkout_session",
            {
                "customer_id": customer_id,
                "mode": mode,
                "line_items": line_items,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
            },
        )
        self.session_counter += 1
        session_id = f"cs_test_{self.session_counter}"
        return CheckoutSessionResult(session_id=session_id, url=f"https://checkout.stripe.com/pay/{session_id}")

    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscription:
        self._record("retrieve_subscription", subscription_id)
        if subscription_id not in self.subscriptions:
            raise ProviderError(f"No such subscription: {subscription_id}")
        return self.subscriptions[subscription_id]

    def cancel_subscription_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        self._record("cancel_subscription_at_period_end", subscription_id)
        if subscription_id not in self.subscriptions:
            raise ProviderError(f"No such subscription: {subscription_id}")
        canceled = self.subscriptions[subscription_id].model_copy(update={"cancel_at_period_end": True})
        self.subscriptions[subscription_id] = canceled
        return canceled

    def get_default_payment_method(self, customer_id: str):
        self._record("get_default_payment_method", customer_id)
        return self.default_payment_methods.get(customer_id)


@pytest.fixture
async def test_engine():
    """
    Fresh in-memory database per test. StaticPool keeps every session on
    the one connection so they all see the same tables.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated AsyncSession for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def fake_provider():
    return FakePaymentProvider()


@pytest.fixture
async def client(session_factory, fake_provider):
    """HTTP client bound to the app, with the test database and fake Stripe"""
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: fake_provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_test_user(db, email="ada@example.com", **overrides):
    user_data = {
        "name": "Ada Lovelace",
        "email": email,
        "hashed_password": "not-a-real-hash",
        "date_of_birth": date(1990, 1, 1),
    }
    user_data.update(overrides)
    user = await UserRepository(db).create_user(user_data)
    await db.commit()
    return user


@pytest.fixture
async def user(test_db):
    return await create_test_user(test_db)


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_jwt(str(user.id), user.email)}"}
