import stripe

from app.db.session import ensure_indexes
from app.services.auth import sync_user
from app.services.notification import create_notification_helper
from conftest import auth_headers, create_user


async def test_requests_without_a_valid_token_are_unauthorized(client):
    missing = await client.get("/api/users/me")
    garbage = await client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert missing.status_code == 401
    assert garbage.status_code == 401


async def test_first_request_creates_the_local_user(client, db):
    response = await client.get(
        "/api/users/me",
        headers=auth_headers("user_new", email="new@example.com", username="newbie")
    )

    assert response.status_code == 200
    assert response.json()["username"] == "newbie"
    stored = await db.users.find_one({"id": "user_new"})
    assert stored["email"] == "new@example.com"
    assert stored["role"] == "user"


async def test_user_with_same_email_is_relinked(client, db):
    await create_user(db, "user_old", cart=["p1"])

    response = await client.get(
        "/api/users/me",
        headers=auth_headers("user_new", email="user_old@example.com")
    )

    assert response.json()["id"] == "user_new"
    assert response.json()["cart"] == ["p1"]
    assert await db.users.count_documents({}) == 1


async def test_banned_user_is_forbidden(client, db):
    await create_user(db, "banned", is_banned=True)

    response = await client.get("/api/users/me", headers=auth_headers("banned"))

    assert response.status_code == 403


async def test_public_profile_hides_private_fields(client, db):
    await create_user(db, "seller", payout_account_id="acct_1")

    response = await client.get("/api/users/seller")

    assert response.status_code == 200
    assert "email" not in response.json()
    assert "payout_account_id" not in response.json()
    assert (await client.get("/api/users/nobody")).status_code == 404


async def test_onboarding_creates_the_payout_account_once(client, db):
    await create_user(db, "seller")

    response = await client.post("/api/users/me/payouts/onboarding", headers=auth_headers("seller"))

    assert response.json()["url"].endswith("acct_test_new")
    stored = await db.users.find_one({"id": "seller"})
    assert stored["payout_account_id"] == "acct_test_new"


async def test_onboarding_degrades_to_null_on_payment_errors(client, db, payments):
    await create_user(db, "seller")
    payments.error = stripe.StripeError("connection reset")

    response = await client.post("/api/users/me/payouts/onboarding", headers=auth_headers("seller"))

    assert response.status_code == 200
    assert response.json() == {"url": None}


async def test_balance(client, db, payments):
    await create_user(db, "fresh")
    await create_user(db, "seller", payout_account_id="acct_1")

    assert (await client.get("/api/users/me/payouts/balance", headers=auth_headers("fresh"))).json() is None

    balance = (await client.get("/api/users/me/payouts/balance", headers=auth_headers("seller"))).json()
    assert balance == {"available": 42.5, "pending": 10.0, "currency": "EUR"}

    payments.error = stripe.StripeError("boom")
    assert (await client.get("/api/users/me/payouts/balance", headers=auth_headers("seller"))).json() is None


async def test_notifications_are_listed_and_marked_read(client, db):
    await create_user(db, "seller")
    for title in ("First", "Second"):
        await create_notification_helper(
            db, user_id="seller", notification_type="SALE", title=title,
            message="Your product has been purchased.", link="/dashboard?tab=sales"
        )
    other = await create_notification_helper(
        db, user_id="other", notification_type="SYSTEM", title="Hi", message="Welcome", link="/"
    )
    headers = auth_headers("seller")

    listed = (await client.get("/api/notifications", headers=headers)).json()
    assert len(listed) == 2
    assert (await client.get("/api/notifications/unread-count", headers=headers)).json() == {"unread_count": 2}

    marked = await client.put(f"/api/notifications/{listed[0]['id']}/mark-read", headers=headers)
    assert marked.status_code == 200
    assert (await client.get("/api/notifications/unread-count", headers=headers)).json() == {"unread_count": 1}

    foreign = await client.put(f"/api/notifications/{other.id}/mark-read", headers=headers)
    assert foreign.status_code == 404

    await client.put("/api/notifications/mark-all-read", headers=headers)
    assert (await client.get("/api/notifications/unread-count", headers=headers)).json() == {"unread_count": 0}


class RivalFirstUsers:
    """Users collection where a concurrent request inserts the same subject first"""

    def __init__(self, users):
        self._users = users

    async def insert_one(self, document, *args, **kwargs):
        await self._users.insert_one({**document, "username": "first_request"})
        return await self._users.insert_one(document, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._users, name)


class RivalFirstDb:
    def __init__(self, db):
        self._db = db
        self.users = RivalFirstUsers(db.users)

    def __getattr__(self, name):
        return getattr(self._db, name)


async def test_concurrent_first_requests_share_one_user(db):
    await ensure_indexes(db)

    user = await sync_user(RivalFirstDb(db), {"sub": "user_new", "username": "second_request"})

    assert user["username"] == "first_request"
    assert await db.users.count_documents({"id": "user_new"}) == 1
