from fastapi import APIRouter, Depends
from typing import Optional
import logging

import stripe

from app.models.user import User, PublicProfile, PayoutBalance
from app.db.session import get_db
from app.core.config import settings
from app.core.errors import NotFound
from app.services.auth import get_current_user
from app.services.payments import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/users/me", response_model=User)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user

@router.get("/users/{user_id}", response_model=PublicProfile)
async def get_public_profile(user_id: str, db=Depends(get_db)):
    user = await db.users.find_one({"id": user_id})
    if not user:
        raise NotFound("User not found")
    return PublicProfile(**user)

@router.post("/users/me/payouts/onboarding")
async def get_payout_onboarding_link(
    current_user: User = Depends(get_current_user),
    db=Depends(get_db),
    payments: PaymentGateway = Depends(get_payment_gateway)
):
    """Return a Stripe Connect onboarding link, creating the account if needed"""
    try:
        account_id = current_user.payout_account_id
        if not account_id:
            account_id = await payments.create_express_account()
            await db.users.update_one(
                {"id": current_user.id},
                {"$set": {"payout_account_id": account_id}}
            )
            logger.info(f"Created payout account {account_id} for user {current_user.id}")

        url = await payments.create_onboarding_link(
            account_id,
            refresh_url=f"{settings.APP_URL}/dashboard",
            return_url=f"{settings.APP_URL}/dashboard"
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe onboarding link failed for user {current_user.id}: {str(e)}")
        return {"url": None}

    return {"url": url}

@router.get("/users/me/payouts/balance", response_model=Optional[PayoutBalance])
async def get_payout_balance(
    current_user: User = Depends(get_current_user),
    payments: PaymentGateway = Depends(get_payment_gateway)
):
    if not current_user.payout_account_id:
        return None

    try:
        balance = await payments.retrieve_balance(current_user.payout_account_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe balance retrieval failed for user {current_user.id}: {str(e)}")
        return None

    return PayoutBalance(**balance)
