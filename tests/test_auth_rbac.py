import uuid

from models import Role


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


async def test_register_creates_account_with_signup_credits(client, token):
    user_id = uuid.uuid4()
    headers = bearer(token(user_id, email="maria@example.com"))

    response = await client.post("/api/auth/register", json={"name": "Maria Silva"}, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == str(user_id)
    assert body["email"] == "maria@example.com"
    assert body["role"] == "client"
    assert body["credits"] == 20

    me = await client.get("/api/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["name"] == "Maria Silva"


async def test_register_is_idempotent(client, token):
    headers = bearer(token(uuid.uuid4(), email="loja@example.com"))

    first = await client.post("/api/auth/register", json={"name": "Loja", "role": "store"}, headers=headers)
    second = await client.post("/api/auth/register", json={"name": "Outro nome"}, headers=headers)

    assert first.status_code == second.status_code == 201
    assert second.json()["name"] == "Loja"
    assert second.json()["role"] == "store"


async def test_register_with_taken_email_is_rejected(client, token, make_account):
    await make_account(email="ana@example.com")
    headers = bearer(token(uuid.uuid4(), email="ana@example.com"))

    response = await client.post("/api/auth/register", json={"name": "Ana"}, headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Email already registered.", "code": "invalid_input"}


async def test_admin_role_cannot_be_self_assigned(client, token):
    headers = bearer(token(uuid.uuid4(), email="root@example.com"))

    response = await client.post("/api/auth/register", json={"name": "Root", "role": "admin"}, headers=headers)

    assert response.status_code == 403


async def test_missing_token_is_unauthenticated(client):
    response = await client.get("/api/me")

    assert response.status_code == 401
    assert response.json()["code"] == "unauthenticated"
    assert response.headers["www-authenticate"] == "Bearer"


async def test_token_signed_with_wrong_secret_is_rejected(client, make_account, token):
    account = await make_account()

    response = await client.get("/api/me", headers=bearer(token(account.id, secret="not-the-secret")))

    assert response.status_code == 401


async def test_expired_token_is_rejected(client, make_account, token):
    account = await make_account()

    response = await client.get("/api/me", headers=bearer(token(account.id, expires_in=-60)))

    assert response.status_code == 401


async def test_valid_token_without_account_is_not_found(client, token):
    response = await client.get("/api/me", headers=bearer(token(uuid.uuid4())))

    assert response.status_code == 404
    assert response.json()["error"] == "User not found."


async def test_profile_update_cannot_touch_credits_or_role(client, make_account, auth, balance_of):
    account = await make_account(credits=3)

    response = await client.patch(
        "/api/me", json={"name": "Maria S.", "credits": 999, "role": "admin"}, headers=auth(account)
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Maria S."
    assert response.json()["role"] == "client"
    assert await balance_of(account.id) == 3


async def test_role_hierarchy(client, make_account, auth):
    shopper = await make_account(role=Role.CLIENT)
    owner = await make_account(role=Role.STORE)
    admin = await make_account(role=Role.ADMIN)

    # CLIENT routes accept every role.
    for account in (shopper, owner, admin):
        assert (await client.get("/api/me", headers=auth(account))).status_code == 200

    # STORE routes accept STORE and ADMIN.
    assert (await client.get("/api/stores/mine", headers=auth(shopper))).status_code == 403
    assert (await client.get("/api/stores/mine", headers=auth(owner))).status_code == 200
    assert (await client.get("/api/stores/mine", headers=auth(admin))).status_code == 200

    # ADMIN routes accept ADMIN only.
    assert (await client.get("/api/admin/stats", headers=auth(shopper))).status_code == 403
    assert (await client.get("/api/admin/stats", headers=auth(owner))).status_code == 403
    assert (await client.get("/api/admin/stats", headers=auth(admin))).status_code == 200


async def test_admin_may_act_for_another_account(client, make_account, auth):
    admin = await make_account(role=Role.ADMIN)
    shopper = await make_account(credits=7)

    response = await client.get(f"/api/user-credits/{shopper.id}", headers=auth(admin))

    assert response.status_code == 200
    assert response.json() == {"credits": 7}
