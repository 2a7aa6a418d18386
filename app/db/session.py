import logging
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.core.config import Settings

logger = logging.getLogger(__name__)

def create_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(settings.MONGO_URL, maxPoolSize=10, minPoolSize=10)

async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes the application relies on"""
    await db.products.create_index("id", unique=True)
    await db.products.create_index([("seller_id", ASCENDING)])
    await db.products.create_index([("category", ASCENDING)])
    await db.products.create_index([("price", ASCENDING)])
    await db.products.create_index([("created_at", DESCENDING)])

    # One proof of purchase per buyer and product
    await db.purchases.create_index(
        [("buyer_id", ASCENDING), ("product_id", ASCENDING)],
        unique=True,
        name="buyer_product_unique"
    )
    await db.purchases.create_index([("seller_id", ASCENDING)])

    # One review per user and product; replies are not constrained
    await db.reviews.create_index(
        [("product_id", ASCENDING), ("user_id", ASCENDING), ("type", ASCENDING)],
        unique=True,
        partialFilterExpression={"type": "review"},
        name="one_review_per_user"
    )
    await db.reviews.create_index([("parent_id", ASCENDING)])

    await db.users.create_index("id", unique=True)
    await db.notifications.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    logger.info("MongoDB indexes ensured")

def get_db(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.db
