"""Checkout session creation.

Nothing is persisted here: the buyer and the ordered product list travel to
Stripe as session metadata and come back with the webhook, which is the only
place purchases are recorded.
"""
import json
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List

import stripe

from app.core.config import settings
from app.core.errors import NotFound, SellerNotReady, UpstreamFailure, ValidationFailed
from app.models.product import Product
from app.models.user import User
from app.services.payments import PaymentGateway

logger = logging.getLogger(__name__)

PLATFORM_FEE_RATE = Decimal("0.15")

# Stripe rejects metadata values longer than this
METADATA_VALUE_LIMIT = 500

# Metadata keys read back by the webhook reconciler
BUYER_KEY = "userId"
PRODUCT_IDS_KEY = "productIds"
LEGACY_PRODUCT_ID_KEY = "productId"
TRANSFER_GROUP_KEY = "transferGroup"

def to_cents(amount: float) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def platform_fee(price_cents: int) -> int:
    """Commission kept by the platform on one item, in cents"""
    return int((Decimal(price_cents) * PLATFORM_FEE_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def encode_product_ids(product_ids: List[str]) -> str:
    encoded = json.dumps(product_ids, separators=(",", ":"))
    if len(encoded) > METADATA_VALUE_LIMIT:
        raise ValidationFailed("Too many products in one checkout")
    return encoded

async def prune_cart(db, buyer: User) -> List[str]:
    """Drop deleted and already owned products from the buyer's cart.

    Returns the remaining ids in cart order.
    """
    cart = list(dict.fromkeys(buyer.cart))
    if not cart:
        return []

    existing = await db.products.find({"id": {"$in": cart}}, {"id": 1}).to_list(None)
    existing_ids = {p["id"] for p in existing}
    owned = await db.purchases.find(
        {"buyer_id": buyer.id, "product_id": {"$in": cart}},
        {"product_id": 1}
    ).to_list(None)
    owned_ids = {p["product_id"] for p in owned}

    stale = [pid for pid in cart if pid not in existing_ids or pid in owned_ids]
    if stale:
        await db.users.update_one({"id": buyer.id}, {"$pullAll": {"cart": stale}})
        logger.info(f"Removed {len(stale)} unavailable product(s) from the cart of {buyer.id}")

    return [pid for pid in cart if pid not in stale]

async def create_checkout_session(
    db,
    payments: PaymentGateway,
    buyer: User,
    product_ids: List[str],
    cancel_path: str = "/cart",
) -> str:
    """Create a Stripe Checkout session for the given products and return its URL"""
    if not product_ids:
        raise ValidationFailed("Your cart is empty")
    if len(set(product_ids)) != len(product_ids):
        raise ValidationFailed("A product appears more than once in the checkout")

    products: List[Product] = []
    for product_id in product_ids:
        product = await db.products.find_one({"id": product_id})
        if not product:
            raise NotFound("Product not found")
        products.append(Product(**product))

    owned = await db.purchases.count_documents({
        "buyer_id": buyer.id,
        "product_id": {"$in": product_ids}
    })
    if owned:
        raise ValidationFailed("Product already purchased")

    # Every seller must be able to receive their share
    payout_accounts: Dict[str, str] = {}
    for seller_id in {p.seller_id for p in products}:
        seller = await db.users.find_one({"id": seller_id})
        if not seller or not seller.get("payout_account_id"):
            raise SellerNotReady()
        payout_accounts[seller_id] = seller["payout_account_id"]

    line_items = []
    total_fee = 0
    for product in products:
        price_cents = to_cents(product.price)
        total_fee += platform_fee(price_cents)
        product_data = {"name": product.title, "description": product.description[:500]}
        if product.preview_image_url:
            product_data["images"] = [product.preview_image_url]
        line_items.append({
            "price_data": {
                "currency": settings.CURRENCY,
                "product_data": product_data,
                "unit_amount": price_cents,
            },
            "quantity": 1,
        })

    metadata = {
        BUYER_KEY: buyer.id,
        PRODUCT_IDS_KEY: encode_product_ids(product_ids),
    }

    if len(payout_accounts) == 1:
        # Destination charge: Stripe splits the payment at settlement
        payment_intent_data = {
            "application_fee_amount": total_fee,
            "transfer_data": {"destination": next(iter(payout_accounts.values()))},
        }
    else:
        # Separate charges and transfers, settled by the webhook per seller
        transfer_group = f"checkout_{uuid.uuid4()}"
        metadata[TRANSFER_GROUP_KEY] = transfer_group
        payment_intent_data = {"transfer_group": transfer_group}

    try:
        session = await payments.create_checkout_session(
            line_items=line_items,
            metadata=metadata,
            success_url=f"{settings.APP_URL}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.APP_URL}{cancel_path}",
            payment_intent_data=payment_intent_data,
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout creation failed for buyer {buyer.id}: {str(e)}")
        raise UpstreamFailure("Could not create the payment session")

    if not session.url:
        raise UpstreamFailure("Payment provider returned no checkout URL")

    logger.info(
        f"Checkout session {session.session_id} created for buyer {buyer.id} "
        f"with {len(product_ids)} product(s)"
    )
    return session.url
