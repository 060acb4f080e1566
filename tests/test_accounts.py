import asyncio

import pytest

from conftest import bearer
from docgate.errors import AccountNotFound
from docgate.services.identity import AuthMethod, Identity


# =============================================================================
# Registration and balance
# =============================================================================

async def test_register_grants_starting_balance(client, settings, make_token):
    response = await client.post("/api/v1/register", headers=bearer(make_token(email="new@example.com")))

    assert response.status_code == 201
    body = response.json()
    assert body["userId"] == "new@example.com"
    assert body["email"] == "new@example.com"
    assert body["credits"] == settings.starting_balance


async def test_register_with_custom_user_id(client, make_token):
    response = await client.post(
        "/api/v1/register", json={"userId": "acme-42"}, headers=bearer(make_token(email="ops@acme.test")),
    )
    assert response.status_code == 201
    assert response.json()["userId"] == "acme-42"


async def test_register_twice_conflicts(client, make_token):
    headers = bearer(make_token())
    assert (await client.post("/api/v1/register", headers=headers)).status_code == 201

    response = await client.post("/api/v1/register", headers=headers)
    assert response.status_code == 409
    assert response.json()["message"] == "User already registered"


async def test_register_taken_user_id(client, make_token, make_account):
    await make_account(email="first@example.com", user_id="shared-id")
    response = await client.post(
        "/api/v1/register", json={"userId": "shared-id"}, headers=bearer(make_token(email="second@example.com")),
    )
    assert response.status_code == 409


async def test_balance_provisions_on_first_contact(client, settings, make_token):
    response = await client.get("/api/v1/credits/balance", headers=bearer(make_token(email="fresh@example.com")))

    assert response.status_code == 200
    assert response.json() == {
        "message": "Credits retrieved successfully",
        "userId": "fresh@example.com",
        "credits": settings.starting_balance,
    }


async def test_concurrent_provisioning_creates_one_account(services, settings):
    identity = Identity(email="race@example.com", auth_method=AuthMethod.BEARER_TOKEN)

    accounts = await asyncio.gather(*(services.accounts.get_or_provision(identity) for _ in range(5)))

    assert {a.user_id for a in accounts} == {"race@example.com"}
    assert await services.ledger.get_balance("race@example.com") == settings.starting_balance
    assert (await services.accounts.stats())["total_users"] == 1


async def test_api_key_for_deleted_account(services, make_account):
    user_id = await make_account()
    _, full_key = await services.keys.create_key(user_id, "user@example.com", "ci")
    await services.ledger.accounts.delete(user_id)

    identity = await services.identity.resolve(f"Bearer {full_key}")
    with pytest.raises(AccountNotFound):
        await services.accounts.get_or_provision(identity)


async def test_deduct_own_credits(client, make_token, make_account):
    await make_account(balance=5)
    headers = bearer(make_token())

    response = await client.post("/api/v1/credits/deduct", json={"amount": 3}, headers=headers)
    assert response.status_code == 200
    assert response.json()["credits"] == 2

    response = await client.post("/api/v1/credits/deduct", json={"amount": 3}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "insufficient_credits"


@pytest.mark.parametrize("amount", [0, -2])
async def test_deduct_rejects_non_positive(client, make_token, make_account, amount):
    await make_account(balance=5)
    response = await client.post("/api/v1/credits/deduct", json={"amount": amount}, headers=bearer(make_token()))
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


async def test_add_credits_admin_only(client, services, admin_token, make_token, make_account):
    user_id = await make_account(balance=1)
    body = {"userId": user_id, "amount": 9}

    assert (await client.post("/api/v1/credits/add", json=body, headers=bearer(make_token()))).status_code == 403

    response = await client.post("/api/v1/credits/add", json=body, headers=bearer(admin_token))
    assert response.status_code == 200
    assert response.json()["credits"] == 10
    assert await services.ledger.get_balance(user_id) == 10


async def test_add_credits_unknown_account(client, admin_token):
    response = await client.post(
        "/api/v1/credits/add", json={"userId": "ghost", "amount": 1}, headers=bearer(admin_token),
    )
    assert response.status_code == 404


# =============================================================================
# Admin views
# =============================================================================

async def test_admin_user_views(client, admin_token, make_account):
    await make_account(email="a@example.com", balance=4)
    await make_account(email="b@example.com", balance=6)
    headers = bearer(admin_token)

    listing = (await client.get("/api/v1/admin/users", headers=headers)).json()
    assert listing["total"] == 2
    assert {u["userId"]: u["credits"] for u in listing["users"]} == {"a@example.com": 4, "b@example.com": 6}

    detail = await client.get("/api/v1/admin/users/a@example.com", headers=headers)
    assert detail.json()["user"]["credits"] == 4
    assert (await client.get("/api/v1/admin/users/ghost", headers=headers)).status_code == 404

    stats = (await client.get("/api/v1/admin/stats", headers=headers)).json()
    assert stats["totalUsers"] == 2
    assert stats["totalCredits"] == 10
    assert stats["avgCredits"] == 5.0


async def test_admin_views_refuse_non_admins(client, make_token):
    response = await client.get("/api/v1/admin/users", headers=bearer(make_token()))
    assert response.status_code == 403
