"""Turns Stripe "checkout.session.completed" events into purchase records.

Stripe redelivers events until it gets a 2xx, so everything here must be safe
to run twice for the same session: existing (buyer, product) purchases are
skipped, and seller transfers only cover purchases created by this delivery.
"""
import json
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

import stripe
from pymongo.errors import DuplicateKeyError

from app.core.config import settings
from app.models.purchase import PurchaseRecord
from app.services.checkout import (
    BUYER_KEY,
    LEGACY_PRODUCT_ID_KEY,
    PRODUCT_IDS_KEY,
    TRANSFER_GROUP_KEY,
    platform_fee,
    to_cents,
)
from app.services.notification import notify_purchase
from app.services.payments import PaymentGateway

logger = logging.getLogger(__name__)

def extract_product_ids(metadata: Dict[str, Any]) -> List[str]:
    """Read the purchased product ids from session metadata.

    Cart checkouts send a JSON array under ``productIds``; single-item
    checkouts from before the cart existed send ``productId``.
    """
    encoded = metadata.get(PRODUCT_IDS_KEY)
    if encoded:
        try:
            parsed = json.loads(encoded)
        except (TypeError, ValueError) as e:
            logger.error(f"Could not parse productIds metadata {encoded!r}: {str(e)}")
            return []
        if not isinstance(parsed, list):
            logger.error(f"productIds metadata is not a list: {encoded!r}")
            return []
        return [str(product_id) for product_id in parsed]

    single_product_id = metadata.get(LEGACY_PRODUCT_ID_KEY)
    if single_product_id:
        return [str(single_product_id)]

    return []

async def materialize_purchase(db, buyer_id: str, product_id: str, session_id: str) -> Optional[PurchaseRecord]:
    product = await db.products.find_one({"id": product_id})
    if not product:
        logger.warning(f"Session {session_id}: product {product_id} not found, skipping")
        return None

    existing_purchase = await db.purchases.find_one({
        "buyer_id": buyer_id,
        "product_id": product_id
    })
    if existing_purchase:
        logger.info(f"Session {session_id}: buyer {buyer_id} already owns {product_id}, skipping")
        return None

    purchase = PurchaseRecord(
        buyer_id=buyer_id,
        product_id=product_id,
        seller_id=str(product["seller_id"]),
        amount=product["price"],
        currency=settings.CURRENCY,
        external_session_id=session_id
    )
    try:
        await db.purchases.insert_one(purchase.model_dump())
    except DuplicateKeyError:
        # A concurrent delivery won the race
        logger.info(f"Session {session_id}: purchase of {product_id} by {buyer_id} recorded concurrently")
        return None

    await notify_purchase(db, buyer_id, purchase.seller_id, product)
    return purchase

async def settle_transfers(db, payments: PaymentGateway, session_id: str, transfer_group: str, purchases: List[PurchaseRecord]):
    """Pay each seller their share of a multi-seller checkout"""
    amounts: Dict[str, int] = defaultdict(int)
    for purchase in purchases:
        price_cents = to_cents(purchase.amount)
        amounts[purchase.seller_id] += price_cents - platform_fee(price_cents)

    for seller_id, amount in amounts.items():
        seller = await db.users.find_one({"id": seller_id})
        if not seller or not seller.get("payout_account_id"):
            logger.error(f"Session {session_id}: seller {seller_id} has no payout account, transfer skipped")
            continue
        try:
            transfer_id = await payments.create_transfer(
                amount=amount,
                currency=settings.CURRENCY,
                destination=seller["payout_account_id"],
                transfer_group=transfer_group,
                idempotency_key=f"{session_id}:{seller_id}",
            )
            logger.info(f"Session {session_id}: transfer {transfer_id} of {amount} to seller {seller_id}")
        except stripe.StripeError as e:
            logger.error(f"Session {session_id}: transfer to seller {seller_id} failed: {str(e)}")

async def reconcile_checkout_session(db, payments: PaymentGateway, session: Dict[str, Any]) -> List[PurchaseRecord]:
    """Record the purchases of one completed checkout session.

    Returns the purchases created by this call. Unknown products and
    purchases that already exist are skipped, never raised.
    """
    session_id = session.get("id", "")
    metadata = session.get("metadata") or {}

    buyer_id = metadata.get(BUYER_KEY)
    if not buyer_id:
        logger.info(f"Session {session_id}: no buyer in metadata, nothing to reconcile")
        return []

    product_ids = extract_product_ids(metadata)
    if not product_ids:
        logger.info(f"Session {session_id}: no products in metadata, nothing to reconcile")
        return []

    created = []
    for product_id in product_ids:
        purchase = await materialize_purchase(db, buyer_id, product_id, session_id)
        if purchase:
            created.append(purchase)

    await db.users.update_one({"id": buyer_id}, {"$set": {"cart": []}})

    transfer_group = metadata.get(TRANSFER_GROUP_KEY)
    if transfer_group and created:
        await settle_transfers(db, payments, session_id, transfer_group, created)

    logger.info(f"Session {session_id}: {len(created)} purchase(s) recorded for buyer {buyer_id}")
    return created

async def sync_payout_account(db, account: Dict[str, Any]):
    """Mirror a connected account's onboarding state onto its seller"""
    account_id = account.get("id")
    if not account_id:
        return
    onboarding_complete = bool(account.get("details_submitted")) and bool(account.get("charges_enabled"))
    result = await db.users.update_one(
        {"payout_account_id": account_id},
        {"$set": {"onboarding_complete": onboarding_complete}}
    )
    if result.matched_count == 0:
        logger.warning(f"account.updated for unknown payout account {account_id}")
