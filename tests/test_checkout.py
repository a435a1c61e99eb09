"""
Tests for checkout session creation and lazy customer resolution
"""
import pytest

from services.billing_store import BillingStore
from services.customer_service import customer_params_for
from tests.conftest import create_test_user

SUBSCRIPTION_URL = "/api/payment/checkout/subscription"
ONE_TIME_URL = "/api/payment/checkout/one-time"

SUBSCRIPTION_BODY = {
    "plan_id": "price_pro",
    "success_url": "https://app.example.com/success?session_id={CHECKOUT_SESSION_ID}",
    "cancel_url": "https://app.example.com/cancel",
}

ONE_TIME_BODY = {
    "amount": 2000,
    "currency": "USD",
    "product_name": "Premium Report",
    "success_url": "https://app.example.com/success",
    "cancel_url": "https://app.example.com/cancel",
}


@pytest.mark.asyncio
async def test_subscription_checkout_creates_customer_and_session(client, test_db, user, auth_headers, fake_provider):
    response = await client.post(SUBSCRIPTION_URL, json=SUBSCRIPTION_BODY, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {
        "sessionId": "cs_test_1",
        "url": "https://checkout.stripe.com/pay/cs_test_1",
    }

    assert fake_provider.call_names() == ["create_customer", "create_checkout_session"]
    session_args = fake_provider.calls[1][1]
    assert session_args["customer_id"] == "cus_test_1"
    assert session_args["mode"] == "subscription"
    assert session_args["line_items"] == [{"price": "price_pro", "quantity": 1}]
    assert session_args["metadata"] == {"user_id": str(user.id), "plan_id": "price_pro"}
    assert session_args["success_url"] == SUBSCRIPTION_BODY["success_url"]

    record = await BillingStore(test_db).get_by_user_id(user.id)
    assert record.external_customer_id == "cus_test_1"
    # Nothing about the subscription is known until the webhook arrives
    assert record.subscription_status == "none"


@pytest.mark.asyncio
async def test_existing_customer_is_reused(client, test_db, user, auth_headers, fake_provider):
    await BillingStore(test_db).set_customer_data(user.id, "cus_existing")
    await test_db.commit()

    for _ in range(2):
        response = await client.post(SUBSCRIPTION_URL, json=SUBSCRIPTION_BODY, headers=auth_headers)
        assert response.status_code == 200

    assert "create_customer" not in fake_provider.call_names()
    assert [call[1]["customer_id"] for call in fake_provider.calls] == ["cus_existing", "cus_existing"]


@pytest.mark.asyncio
async def test_one_time_checkout(client, user, auth_headers, fake_provider):
    response = await client.post(ONE_TIME_URL, json=ONE_TIME_BODY, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["sessionId"] == "cs_test_1"

    session_args = fake_provider.calls[-1][1]
    assert session_args["mode"] == "payment"
    assert session_args["line_items"] == [{
        "price_data": {
            "currency": "usd",
            "product_data": {"name": "Premium Report"},
            "unit_amount": 2000,
        },
        "quantity": 1,
    }]
    assert session_args["metadata"] == {"user_id": str(user.id)}


@pytest.mark.asyncio
async def test_customer_creation_failure(client, test_db, user, auth_headers, fake_provider):
    fake_provider.failing.add("create_customer")

    response = await client.post(SUBSCRIPTION_URL, json=SUBSCRIPTION_BODY, headers=auth_headers)
    assert response.status_code == 502
    assert response.json()["detail"].startswith("Error creating Stripe customer")
    assert "create_checkout_session" not in fake_provider.call_names()

    record = await BillingStore(test_db).get_by_user_id(user.id)
    assert record.external_customer_id is None


@pytest.mark.asyncio
async def test_session_failure_keeps_new_customer(client, test_db, user, auth_headers, fake_provider):
    fake_provider.failing.add("create_checkout_session")

    response = await client.post(SUBSCRIPTION_URL, json=SUBSCRIPTION_BODY, headers=auth_headers)
    assert response.status_code == 500
    assert response.json()["detail"].startswith("Error creating checkout session")

    # The retry must not create a second Stripe customer
    record = await BillingStore(test_db).get_by_user_id(user.id)
    assert record.external_customer_id == "cus_test_1"


@pytest.mark.asyncio
async def test_checkout_requires_authentication(client, fake_provider):
    response = await client.post(SUBSCRIPTION_URL, json=SUBSCRIPTION_BODY)
    assert response.status_code == 401
    assert fake_provider.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"plan_id": "   "},
    {"success_url": "not-a-url"},
    {"cancel_url": "ftp://example.com/cancel"},
])
async def test_subscription_checkout_validation(client, auth_headers, fake_provider, overrides):
    response = await client.post(SUBSCRIPTION_URL, json={**SUBSCRIPTION_BODY, **overrides}, headers=auth_headers)
    assert response.status_code == 422
    assert fake_provider.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"amount": 0},
    {"amount": -100},
    {"currency": "us"},
    {"currency": "12$"},
    {"product_name": ""},
])
async def test_one_time_checkout_validation(client, auth_headers, fake_provider, overrides):
    response = await client.post(ONE_TIME_URL, json={**ONE_TIME_BODY, **overrides}, headers=auth_headers)
    assert response.status_code == 422
    assert fake_provider.calls == []


@pytest.mark.asyncio
async def test_customer_params_from_profile(test_db):
    full = await create_test_user(
        test_db,
        email="full@example.com",
        mobile="5551234567",
        country_code="+1",
        address="1 Main St",
        city="Springfield",
        country="US",
        postal_code="12345",
    )
    params = customer_params_for(full)
    assert params.name == "Ada Lovelace"
    assert params.email == "full@example.com"
    assert params.phone == "+15551234567"
    assert params.address.model_dump() == {
        "line1": "1 Main St", "city": "Springfield", "country": "US", "postal_code": "12345",
    }
    assert params.metadata == {"user_id": str(full.id)}

    partial = await create_test_user(test_db, email="partial@example.com", mobile="5551234567", city="Springfield")
    params = customer_params_for(partial)
    assert params.phone is None
    assert params.address is None


@pytest.mark.asyncio
async def test_checkout_without_billing_record(client, test_db, user, auth_headers, fake_provider):
    store = BillingStore(test_db)
    await test_db.delete(await store.get_by_user_id(user.id))
    await test_db.commit()

    response = await client.post(SUBSCRIPTION_URL, json=SUBSCRIPTION_BODY, headers=auth_headers)
    assert response.status_code == 404
    # No Stripe customer is created for an account that cannot store it
    assert fake_provider.calls == []
