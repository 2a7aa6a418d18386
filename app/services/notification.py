from typing import Optional, Dict, Any
from datetime import datetime
import logging

from app.models.notification import Notification

logger = logging.getLogger(__name__)

async def create_notification_helper(
    db,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    link: str,
    title_key: Optional[str] = None,
    message_key: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None
):
    """Helper function to create notifications for various events"""
    notification_obj = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        title_key=title_key,
        message_key=message_key,
        params=params or {},
        link=link
    )
    await db.notifications.insert_one(notification_obj.model_dump())
    return notification_obj

async def notify_purchase(db, buyer_id: str, seller_id: str, product: dict):
    """Tell the seller about a sale and the buyer about their order"""
    params = {"productTitle": product["title"], "price": product["price"]}
    try:
        await create_notification_helper(
            db,
            user_id=seller_id,
            notification_type="SALE",
            title="New sale!",
            message=f"Your product '{product['title']}' has been purchased.",
            link="/dashboard?tab=sales",
            title_key="notifications.sale.title",
            message_key="notifications.sale.message",
            params=params
        )
        await create_notification_helper(
            db,
            user_id=buyer_id,
            notification_type="ORDER",
            title="Purchase confirmed",
            message=f"You can now download '{product['title']}'.",
            link="/dashboard?tab=orders",
            title_key="notifications.order.title",
            message_key="notifications.order.message",
            params=params
        )
    except Exception as e:
        logger.error(f"Failed to send purchase notifications for product {product['id']}: {str(e)}")

async def unread_count(db, user_id: str) -> int:
    return await db.notifications.count_documents({"user_id": user_id, "read": False})

async def mark_notifications_read(db, user_id: str, notification_id: Optional[str] = None) -> int:
    """Mark one notification, or all of the user's unread ones, as read"""
    filters = {"user_id": user_id, "read": False}
    if notification_id:
        filters["id"] = notification_id
    result = await db.notifications.update_many(
        filters,
        {"$set": {"read": True, "read_at": datetime.utcnow()}}
    )
    return result.modified_count
