from fastapi import APIRouter, Depends, HTTPException, Request
from typing import List
import logging

import stripe

from app.models.purchase import CheckoutRequest, CheckoutResponse, Order, OrderProduct, PurchaseRecord, Sale
from app.models.user import User
from app.db.session import get_db
from app.services.auth import get_current_user
from app.services.checkout import create_checkout_session, prune_cart
from app.services.payments import PaymentGateway, get_payment_gateway
from app.services.ratelimit import rate_limit_user
from app.services.reconciler import reconcile_checkout_session, sync_payout_account

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    dependencies=[Depends(rate_limit_user("checkout"))]
)
async def checkout(
    checkout_data: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db),
    payments: PaymentGateway = Depends(get_payment_gateway)
):
    cancel_path = f"/product/{checkout_data.product_ids[0]}" if len(checkout_data.product_ids) == 1 else "/cart"
    url = await create_checkout_session(db, payments, current_user, checkout_data.product_ids, cancel_path)
    return CheckoutResponse(url=url)

@router.post(
    "/checkout/cart",
    response_model=CheckoutResponse,
    dependencies=[Depends(rate_limit_user("checkout"))]
)
async def checkout_cart(
    current_user: User = Depends(get_current_user),
    db=Depends(get_db),
    payments: PaymentGateway = Depends(get_payment_gateway)
):
    product_ids = await prune_cart(db, current_user)
    url = await create_checkout_session(db, payments, current_user, product_ids)
    return CheckoutResponse(url=url)

@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    db=Depends(get_db),
    payments: PaymentGateway = Depends(get_payment_gateway)
):
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        event = payments.verify_event(payload, signature)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning(f"Rejected Stripe webhook: {str(e)}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {str(e)}")

    event_type = event.get("type")
    data_object = (event.get("data") or {}).get("object") or {}

    # Stripe retries on anything but a 2xx, so business errors stop here
    try:
        if event_type == "checkout.session.completed":
            await reconcile_checkout_session(db, payments, data_object)
        elif event_type == "account.updated":
            await sync_payout_account(db, data_object)
    except Exception:
        logger.exception(f"Webhook {event.get('id')} ({event_type}) processed with errors")

    return {"status": "ok"}

@router.get("/orders", response_model=List[Order])
async def get_my_orders(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    purchases = await db.purchases.find({"buyer_id": current_user.id}).sort("created_at", -1).to_list(100)

    result = []
    for purchase in purchases:
        product = await db.products.find_one({"id": purchase["product_id"]})
        result.append(Order(
            purchase=PurchaseRecord(**purchase),
            product=OrderProduct(**product) if product else None
        ))

    return result

@router.get("/sales", response_model=List[Sale])
async def get_sales_history(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    purchases = await db.purchases.find({"seller_id": current_user.id}).sort("created_at", -1).to_list(100)

    result = []
    for purchase in purchases:
        product = await db.products.find_one({"id": purchase["product_id"]})
        result.append(Sale(
            purchase=PurchaseRecord(**purchase),
            product_title=product["title"] if product else "Deleted product"
        ))

    return result
