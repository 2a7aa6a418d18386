import json

import stripe

from app.services.checkout import encode_product_ids, platform_fee, to_cents
from conftest import auth_headers, create_product, create_user


def test_to_cents_rounds_half_up():
    assert to_cents(19.99) == 1999
    assert to_cents(0.005) == 1
    assert to_cents(1000) == 100000


def test_platform_fee_is_fifteen_percent_per_item():
    assert platform_fee(2000) == 300
    assert platform_fee(1999) == 300  # 299.85
    assert platform_fee(110) == 17  # 16.5 rounds up


def test_encode_product_ids_keeps_order():
    assert json.loads(encode_product_ids(["b", "a", "c"])) == ["b", "a", "c"]


async def test_checkout_returns_stripe_url_for_ready_seller(client, db, payments):
    await create_user(db, "seller", payout_account_id="acct_seller")
    product = await create_product(db, "seller", price=20.0)

    response = await client.post(
        "/api/checkout",
        json={"product_ids": [product.id]},
        headers=auth_headers("buyer")
    )

    assert response.status_code == 200
    assert response.json()["url"].startswith("https://checkout.stripe.com/")

    session = payments.sessions[0]
    assert session["metadata"]["userId"] == "buyer"
    assert json.loads(session["metadata"]["productIds"]) == [product.id]
    assert session["line_items"][0]["price_data"]["unit_amount"] == 2000
    assert session["payment_intent_data"] == {
        "application_fee_amount": 300,
        "transfer_data": {"destination": "acct_seller"},
    }
    assert session["cancel_url"].endswith(f"/product/{product.id}")

    # Nothing is recorded until the webhook confirms payment
    assert await db.purchases.count_documents({}) == 0


async def test_checkout_fails_when_seller_has_no_payout_destination(client, db, payments):
    await create_user(db, "seller")
    product = await create_product(db, "seller")

    response = await client.post(
        "/api/checkout",
        json={"product_ids": [product.id]},
        headers=auth_headers("buyer")
    )

    assert response.status_code == 409
    assert payments.sessions == []


async def test_checkout_fails_when_any_seller_is_not_ready(client, db, payments):
    await create_user(db, "ready", payout_account_id="acct_ready")
    await create_user(db, "not-ready")
    first = await create_product(db, "ready")
    second = await create_product(db, "not-ready")

    response = await client.post(
        "/api/checkout",
        json={"product_ids": [first.id, second.id]},
        headers=auth_headers("buyer")
    )

    assert response.status_code == 409


async def test_multi_seller_checkout_uses_a_transfer_group(client, db, payments):
    await create_user(db, "alice", payout_account_id="acct_alice")
    await create_user(db, "bob", payout_account_id="acct_bob")
    first = await create_product(db, "alice", price=10.0)
    second = await create_product(db, "bob", price=30.0)

    response = await client.post(
        "/api/checkout",
        json={"product_ids": [second.id, first.id]},
        headers=auth_headers("buyer")
    )

    assert response.status_code == 200
    session = payments.sessions[0]
    transfer_group = session["metadata"]["transferGroup"]
    assert session["payment_intent_data"] == {"transfer_group": transfer_group}
    assert json.loads(session["metadata"]["productIds"]) == [second.id, first.id]
    assert session["cancel_url"].endswith("/cart")


async def test_checkout_rejects_unknown_and_duplicate_products(client, db):
    await create_user(db, "seller", payout_account_id="acct_seller")
    product = await create_product(db, "seller")

    missing = await client.post("/api/checkout", json={"product_ids": ["nope"]}, headers=auth_headers("buyer"))
    assert missing.status_code == 404

    duplicate = await client.post(
        "/api/checkout",
        json={"product_ids": [product.id, product.id]},
        headers=auth_headers("buyer")
    )
    assert duplicate.status_code == 422

    empty = await client.post("/api/checkout", json={"product_ids": []}, headers=auth_headers("buyer"))
    assert empty.status_code == 422


async def test_checkout_rejects_already_owned_product(client, db):
    await create_user(db, "seller", payout_account_id="acct_seller")
    product = await create_product(db, "seller")
    await db.purchases.insert_one({
        "id": "p1", "buyer_id": "buyer", "product_id": product.id, "seller_id": "seller",
        "amount": 20.0, "currency": "eur", "external_session_id": "cs_old", "status": "completed"
    })

    response = await client.post("/api/checkout", json={"product_ids": [product.id]}, headers=auth_headers("buyer"))

    assert response.status_code == 422
    assert response.json()["detail"] == "Product already purchased"


async def test_checkout_rejects_lists_too_long_for_metadata(client, db, payments):
    await create_user(db, "seller", payout_account_id="acct_seller")
    product_ids = [(await create_product(db, "seller")).id for _ in range(15)]

    response = await client.post("/api/checkout", json={"product_ids": product_ids}, headers=auth_headers("buyer"))

    assert response.status_code == 422
    assert payments.sessions == []


async def test_cart_checkout_uses_the_cart_contents(client, db, payments):
    await create_user(db, "seller", payout_account_id="acct_seller")
    first = await create_product(db, "seller")
    second = await create_product(db, "seller")
    await create_user(db, "buyer", cart=[first.id, second.id])

    response = await client.post("/api/checkout/cart", headers=auth_headers("buyer"))

    assert response.status_code == 200
    assert json.loads(payments.sessions[0]["metadata"]["productIds"]) == [first.id, second.id]
    assert payments.sessions[0]["payment_intent_data"]["application_fee_amount"] == 600


async def test_empty_cart_checkout_is_rejected(client, db):
    await create_user(db, "buyer")

    response = await client.post("/api/checkout/cart", headers=auth_headers("buyer"))

    assert response.status_code == 422


async def test_stripe_error_surfaces_as_upstream_failure(client, db, payments):
    await create_user(db, "seller", payout_account_id="acct_seller")
    product = await create_product(db, "seller")
    payments.error = stripe.APIConnectionError("connection refused")

    response = await client.post("/api/checkout", json={"product_ids": [product.id]}, headers=auth_headers("buyer"))

    assert response.status_code == 502


async def test_checkout_requires_authentication(client):
    response = await client.post("/api/checkout", json={"product_ids": ["a"]})
    assert response.status_code == 401


async def test_cart_checkout_drops_deleted_and_owned_products(client, db, payments):
    await create_user(db, "seller", payout_account_id="acct_seller")
    kept = await create_product(db, "seller")
    gone = await create_product(db, "seller")
    owned = await create_product(db, "seller")
    await create_user(db, "buyer", cart=[kept.id, gone.id, owned.id])
    await db.products.delete_one({"id": gone.id})
    await db.purchases.insert_one({
        "id": "p1", "buyer_id": "buyer", "product_id": owned.id, "seller_id": "seller",
        "amount": 20.0, "currency": "eur", "external_session_id": "cs_0", "status": "completed"
    })

    listed = await client.get("/api/cart", headers=auth_headers("buyer"))
    response = await client.post("/api/checkout/cart", headers=auth_headers("buyer"))

    assert [p["id"] for p in listed.json()] == [kept.id, owned.id]
    assert response.status_code == 200
    assert json.loads(payments.sessions[0]["metadata"]["productIds"]) == [kept.id]
    assert (await db.users.find_one({"id": "buyer"}))["cart"] == [kept.id]


async def test_cart_with_only_unavailable_products_is_rejected(client, db, payments):
    await create_user(db, "seller", payout_account_id="acct_seller")
    gone = await create_product(db, "seller")
    await create_user(db, "buyer", cart=[gone.id])
    await db.products.delete_one({"id": gone.id})

    response = await client.post("/api/checkout/cart", headers=auth_headers("buyer"))

    assert response.status_code == 422
    assert payments.sessions == []
    assert (await db.users.find_one({"id": "buyer"}))["cart"] == []
