"""
Tests for profile read and update
"""
import pytest

from auth_utils import create_jwt
from tests.conftest import create_test_user


@pytest.mark.asyncio
async def test_get_own_profile(client, user, auth_headers):
    response = await client.get(f"/api/user/{user.id}", headers=auth_headers)
    assert response.status_code == 200

    profile = response.json()["user"]
    assert profile["id"] == user.id
    assert profile["email"] == "ada@example.com"
    assert profile["name"] == "Ada Lovelace"
    assert profile["date_of_birth"] == "1990-01-01"
    assert "hashed_password" not in profile


@pytest.mark.asyncio
async def test_other_users_profile_is_forbidden(client, test_db, user, auth_headers):
    other = await create_test_user(test_db, email="grace@example.com")

    response = await client.get(f"/api/user/{other.id}", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only view your own profile"

    response = await client.put(f"/api/user/{other.id}/update", json={"name": "Mallory"}, headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only update your own profile"

    other_headers = {"Authorization": f"Bearer {create_jwt(str(other.id), other.email)}"}
    response = await client.get(f"/api/user/{other.id}", headers=other_headers)
    assert response.json()["user"]["name"] == "Ada Lovelace"


@pytest.mark.asyncio
async def test_update_changes_only_provided_fields(client, test_db, user, auth_headers):
    response = await client.put(
        f"/api/user/{user.id}/update",
        json={"city": "London", "country": "GB", "name": "", "email": "mallory@example.com"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User updated successfully"
    assert body["user"]["city"] == "London"
    assert body["user"]["country"] == "GB"
    # Empty values keep the stored one and email is not editable here
    assert body["user"]["name"] == "Ada Lovelace"
    assert body["user"]["email"] == "ada@example.com"

    response = await client.get(f"/api/user/{user.id}", headers=auth_headers)
    profile = response.json()["user"]
    assert (profile["city"], profile["country"], profile["email"]) == ("London", "GB", "ada@example.com")
    assert profile["mobile"] is None


@pytest.mark.asyncio
async def test_updated_profile_feeds_new_stripe_customer(client, user, auth_headers, fake_provider):
    await client.put(
        f"/api/user/{user.id}/update",
        json={"mobile": "5551234567", "country_code": "+44"},
        headers=auth_headers,
    )
    response = await client.post(
        "/api/payment/checkout/subscription",
        json={
            "plan_id": "price_pro",
            "success_url": "https://app.example.com/success",
            "cancel_url": "https://app.example.com/cancel",
        },
        headers=auth_headers,
    )
    assert response.status_code == 200

    params = fake_provider.calls[0][1]
    assert params.phone == "+445551234567"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"mobile": "1" * 16},
    {"country_code": "+12345"},
])
async def test_update_validation(client, user, auth_headers, body):
    response = await client.put(f"/api/user/{user.id}/update", json=body, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_profile_requires_authentication(client, user):
    assert (await client.get(f"/api/user/{user.id}")).status_code == 401
    assert (await client.put(f"/api/user/{user.id}/update", json={"city": "London"})).status_code == 401


@pytest.mark.asyncio
async def test_non_numeric_user_id(client, auth_headers):
    response = await client.get("/api/user/abc", headers=auth_headers)
    assert response.status_code == 422
