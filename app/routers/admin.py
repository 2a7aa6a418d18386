from fastapi import APIRouter, Depends, Query, Request
from typing import List, Optional
import re

from app.models.user import User, RoleUpdate
from app.models.log import ActivityAction, ActivityLog
from app.models.review import REVIEW, REPLY
from app.db.session import get_db
from app.core.errors import NotFound, ValidationFailed
from app.services.auth import get_admin_user
from app.services.log import log_activity
from app.services.product import update_product_rating

router = APIRouter()

@router.get("/admin/users", response_model=List[User])
async def get_all_users(
    query: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    admin_user: User = Depends(get_admin_user),
    db=Depends(get_db)
):
    filters = {}
    if query:
        pattern = {"$regex": re.escape(query), "$options": "i"}
        filters["$or"] = [
            {"email": pattern},
            {"username": pattern},
            {"first_name": pattern},
            {"last_name": pattern},
            {"id": query}
        ]

    users = await db.users.find(filters).sort("created_at", -1).to_list(limit)
    return [User(**user) for user in users]

@router.put("/admin/users/{user_id}/ban")
async def toggle_user_ban(
    request: Request,
    user_id: str,
    admin_user: User = Depends(get_admin_user),
    db=Depends(get_db)
):
    user = await db.users.find_one({"id": user_id})
    if not user:
        raise NotFound("User not found")
    if user_id == admin_user.id:
        raise ValidationFailed("You cannot ban yourself")

    is_banned = not user.get("is_banned", False)
    await db.users.update_one({"id": user_id}, {"$set": {"is_banned": is_banned}})

    await log_activity(
        db,
        actor=admin_user,
        action="user_banned" if is_banned else "user_unbanned",
        details=f"{'Banned' if is_banned else 'Unbanned'} user {User(**user).display_name}",
        target_id=user_id,
        target_type="user",
        request=request
    )

    return {"success": True, "is_banned": is_banned}

@router.put("/admin/users/{user_id}/role")
async def update_user_role(
    request: Request,
    user_id: str,
    role_data: RoleUpdate,
    admin_user: User = Depends(get_admin_user),
    db=Depends(get_db)
):
    result = await db.users.update_one({"id": user_id}, {"$set": {"role": role_data.role}})
    if result.matched_count == 0:
        raise NotFound("User not found")

    await log_activity(
        db,
        actor=admin_user,
        action="role_changed",
        details=f"Set role of user {user_id} to {role_data.role}",
        target_id=user_id,
        target_type="user",
        request=request
    )

    return {"success": True, "role": role_data.role}

@router.delete("/admin/products/{product_id}")
async def admin_delete_product(
    request: Request,
    product_id: str,
    admin_user: User = Depends(get_admin_user),
    db=Depends(get_db)
):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")

    await db.products.delete_one({"id": product_id})

    await log_activity(
        db,
        actor=admin_user,
        action="product_deleted",
        details=f"Deleted product '{product['title']}' of seller {product['seller_id']}",
        target_id=product_id,
        target_type="product",
        request=request
    )

    return {"success": True}

@router.delete("/admin/reviews/{review_id}")
async def admin_delete_review(
    request: Request,
    review_id: str,
    admin_user: User = Depends(get_admin_user),
    db=Depends(get_db)
):
    review = await db.reviews.find_one({"id": review_id})
    if not review:
        raise NotFound("Review not found")

    await db.reviews.delete_one({"id": review_id})
    if review["type"] == REVIEW:
        await db.reviews.delete_many({"parent_id": review_id, "type": REPLY})
        await update_product_rating(db, review["product_id"])

    await log_activity(
        db,
        actor=admin_user,
        action="review_deleted",
        details=f"Deleted {review['type']} by {review['user_name']} on product {review['product_id']}",
        target_id=review_id,
        target_type="review",
        request=request
    )

    return {"success": True}

@router.get("/admin/activity-logs", response_model=List[ActivityLog])
async def get_activity_logs(
    action: Optional[ActivityAction] = None,
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    admin_user: User = Depends(get_admin_user),
    db=Depends(get_db)
):
    query = {}
    if action:
        query["action"] = action

    logs = await db.activity_logs.find(query).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return [ActivityLog(**log) for log in logs]
