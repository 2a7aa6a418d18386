import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from mongomock_motor import AsyncMongoMockClient

from app.core.config import settings
from app.main import create_app
from app.models.product import Product
from app.models.user import User
from app.services.payments import CheckoutSession, PaymentGateway
from app.services.ratelimit import RateLimiter
from app.services.storage import ObjectStorage, StorageError

WEBHOOK_SECRET = "whsec_test_secret"


class FakePaymentGateway(PaymentGateway):
    """Records Stripe calls instead of sending them. Signature checks are real."""

    def __init__(self):
        super().__init__(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)
        self.sessions = []
        self.transfers = []
        self.error: Optional[Exception] = None

    async def create_checkout_session(self, line_items, metadata, success_url, cancel_url, payment_intent_data=None):
        if self.error:
            raise self.error
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({
            "id": session_id,
            "line_items": line_items,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "payment_intent_data": payment_intent_data,
        })
        return CheckoutSession(session_id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    async def create_transfer(self, amount, currency, destination, transfer_group, idempotency_key):
        if self.error:
            raise self.error
        self.transfers.append({
            "amount": amount,
            "currency": currency,
            "destination": destination,
            "transfer_group": transfer_group,
            "idempotency_key": idempotency_key,
        })
        return f"tr_test_{len(self.transfers)}"

    async def create_express_account(self):
        if self.error:
            raise self.error
        return "acct_test_new"

    async def create_onboarding_link(self, account_id, refresh_url, return_url):
        if self.error:
            raise self.error
        return f"https://connect.stripe.com/setup/e/{account_id}"

    async def retrieve_balance(self, account_id):
        if self.error:
            raise self.error
        return {"available": 42.5, "pending": 10.0, "currency": "EUR"}


class FakeBody:
    def __init__(self, chunks):
        self.chunks = chunks

    def iter_chunks(self):
        return iter(self.chunks)


class FakeStorage(ObjectStorage):
    def __init__(self):
        super().__init__(bucket="koda-test", region="eu-west-3", client=object())
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.requested_keys = []

    def presign_upload(self, key, content_type, filename, metadata, expires_in=60):
        return f"https://koda-test.s3.amazonaws.com/{key}?X-Amz-Signature=put"

    def presign_download(self, key, filename, expires_in=300):
        return f"https://koda-test.s3.amazonaws.com/{key}?X-Amz-Signature=get"

    async def get_object(self, key):
        self.requested_keys.append(key)
        if key not in self.objects:
            raise StorageError("NoSuchKey")
        return {
            "body": FakeBody(self.objects[key]["chunks"]).iter_chunks(),
            "content_type": self.objects[key]["content_type"],
        }


@pytest.fixture
def db():
    return AsyncMongoMockClient()["koda_test"]


@pytest.fixture
def payments():
    return FakePaymentGateway()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def app(db, payments, storage):
    return create_app(db=db, payment_gateway=payments, storage=storage, rate_limiter=RateLimiter(None))


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user_id: str, **claims) -> Dict[str, str]:
    token = jwt.encode({"sub": user_id, **claims}, settings.JWT_SECRET, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


async def create_user(db, user_id: str, **fields) -> User:
    user = User(id=user_id, username=user_id, email=f"{user_id}@example.com", **fields)
    await db.users.insert_one(user.model_dump())
    return user


async def create_product(db, seller_id: str, **fields) -> Product:
    data = {
        "title": "Lead enrichment workflow",
        "description": "Enriches new CRM leads with company data every hour.",
        "price": 20.0,
        "category": "n8n",
        "seller_id": seller_id,
        "file_url": "https://koda-test.s3.eu-west-3.amazonaws.com/files/seller/workflow.json",
    }
    data.update(fields)
    product = Product(**data)
    await db.products.insert_one(product.model_dump())
    return product


def signed_event(event: Dict[str, Any], secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None):
    """Serialize an event and build a Stripe-Signature header for it"""
    body = json.dumps(event)
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()
    return body, {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


def checkout_completed(session_id: str, metadata: Dict[str, str]) -> Dict[str, Any]:
    return {
        "id": f"evt_{session_id}",
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "object": "checkout.session", "metadata": metadata}},
    }
