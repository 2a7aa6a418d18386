import logging
from typing import Any, Dict, List, Optional

import stripe
from fastapi import Request
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

class CheckoutSession:
    def __init__(self, session_id: str, url: str):
        self.session_id = session_id
        self.url = url

class PaymentGateway:
    """Stripe client bound to one API key and webhook secret.

    The key is passed to every call instead of being set on the global
    ``stripe`` module, so several gateways can coexist in one process.
    Network calls run in the threadpool because the SDK is blocking.
    """

    def __init__(self, api_key: str, webhook_secret: str, tolerance: int = 300):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._tolerance = tolerance

    def verify_event(self, payload: bytes, signature: Optional[str]) -> stripe.Event:
        """Check the Stripe-Signature header and return the decoded event.

        Raises stripe.SignatureVerificationError on a bad signature and
        ValueError on a body that is not a JSON object.
        """
        if not signature:
            raise stripe.SignatureVerificationError("No signature provided", signature)
        try:
            return stripe.Webhook.construct_event(
                payload, signature, self._webhook_secret, self._tolerance, api_key=self._api_key
            )
        except (AttributeError, TypeError) as e:
            raise ValueError(f"Webhook payload is not a JSON object: {str(e)}") from e

    async def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        payment_intent_data: Optional[Dict[str, Any]] = None,
    ) -> CheckoutSession:
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": line_items,
            "mode": "payment",
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if payment_intent_data:
            params["payment_intent_data"] = payment_intent_data

        session = await run_in_threadpool(
            stripe.checkout.Session.create, api_key=self._api_key, **params
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        transfer_group: str,
        idempotency_key: str,
    ) -> str:
        transfer = await run_in_threadpool(
            stripe.Transfer.create,
            api_key=self._api_key,
            amount=amount,
            currency=currency,
            destination=destination,
            transfer_group=transfer_group,
            idempotency_key=idempotency_key,
        )
        return transfer.id

    async def create_express_account(self) -> str:
        account = await run_in_threadpool(
            stripe.Account.create,
            api_key=self._api_key,
            type="express",
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
        )
        return account.id

    async def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        link = await run_in_threadpool(
            stripe.AccountLink.create,
            api_key=self._api_key,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
        return link.url

    async def retrieve_balance(self, account_id: str) -> Dict[str, Any]:
        balance = await run_in_threadpool(
            stripe.Balance.retrieve, api_key=self._api_key, stripe_account=account_id
        )
        available = balance.available[0] if balance.available else None
        pending = balance.pending[0] if balance.pending else None
        return {
            "available": available.amount / 100 if available else 0,
            "pending": pending.amount / 100 if pending else 0,
            "currency": available.currency.upper() if available else "EUR",
        }

def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payments
