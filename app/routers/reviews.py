from fastapi import APIRouter, Depends
from typing import List, Optional
from datetime import datetime

from app.models.review import Review, ReviewCreate, ReplyCreate, ReviewResponse, REVIEW, REPLY
from app.models.user import User
from app.db.session import get_db
from app.core.errors import Forbidden, NotFound, ValidationFailed
from app.services.auth import get_current_user, get_current_user_optional
from app.services.notification import create_notification_helper
from app.services.product import update_product_rating
from app.services.ratelimit import rate_limit_user

router = APIRouter()

@router.post(
    "/reviews",
    response_model=Review,
    dependencies=[Depends(rate_limit_user("review"))]
)
async def submit_review(
    review_data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    """Create the user's review of a product, or update it if it exists"""
    product = await db.products.find_one({"id": review_data.product_id})
    if not product:
        raise NotFound("Product not found")

    has_purchased = await db.purchases.find_one({
        "buyer_id": current_user.id,
        "product_id": review_data.product_id
    })
    # The seller may review their own product to preview how reviews display
    is_seller = product["seller_id"] == current_user.id
    if not has_purchased and not is_seller:
        raise Forbidden("You must purchase this product to leave a review")

    # Atomic upsert: concurrent first reviews from one user end up as a single record
    review_filter = {
        "product_id": review_data.product_id,
        "user_id": current_user.id,
        "type": REVIEW
    }
    new_review = Review(
        product_id=review_data.product_id,
        user_id=current_user.id,
        user_name=current_user.display_name,
        type=REVIEW,
        rating=review_data.rating,
        comment=review_data.comment or ""
    )
    result = await db.reviews.update_one(
        review_filter,
        {
            "$set": {
                "rating": new_review.rating,
                "comment": new_review.comment,
                "user_name": new_review.user_name,
                "updated_at": new_review.updated_at
            },
            "$setOnInsert": {"id": new_review.id, "created_at": new_review.created_at}
        },
        upsert=True
    )

    if result.upserted_id is not None and not is_seller:
        await create_notification_helper(
            db,
            user_id=product["seller_id"],
            notification_type="REVIEW",
            title="New review",
            message=f"{current_user.display_name} rated '{product['title']}' {review_data.rating}/5.",
            link=f"/product/{product['id']}",
            title_key="notifications.review.title",
            message_key="notifications.review.message",
            params={"productTitle": product["title"], "rating": review_data.rating}
        )

    await update_product_rating(db, review_data.product_id)

    review = await db.reviews.find_one(review_filter)
    return Review(**review)

@router.get("/products/{product_id}/reviews", response_model=List[ReviewResponse])
async def get_product_reviews(
    product_id: str,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db=Depends(get_db)
):
    records = await db.reviews.find({"product_id": product_id}).sort("created_at", -1).to_list(1000)

    replies = {}
    for record in records:
        if record["type"] == REPLY:
            replies.setdefault(record["parent_id"], []).append(Review(**record))

    result = []
    for record in records:
        if record["type"] != REVIEW:
            continue
        review = Review(**record)
        can_edit = bool(current_user) and current_user.id == review.user_id
        result.append(ReviewResponse(review=review, can_edit=can_edit, replies=replies.get(review.id, [])))

    return result

@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    review = await db.reviews.find_one({"id": review_id})
    if not review:
        raise NotFound("Review not found")

    if review["user_id"] != current_user.id and current_user.role != "admin":
        raise Forbidden("You can only delete your own reviews")

    await db.reviews.delete_one({"id": review_id})
    if review["type"] == REVIEW:
        await db.reviews.delete_many({"parent_id": review_id, "type": REPLY})
        await update_product_rating(db, review["product_id"])

    return {"success": True}

@router.post("/reviews/{review_id}/replies", response_model=Review)
async def reply_to_review(
    review_id: str,
    reply_data: ReplyCreate,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    """Create the seller's reply to a review, or edit it if it exists"""
    parent = await db.reviews.find_one({"id": review_id})
    if not parent:
        raise NotFound("Review not found")
    if parent["type"] != REVIEW:
        raise ValidationFailed("Replies can only be posted on reviews")

    product = await db.products.find_one({"id": parent["product_id"]})
    if not product:
        raise NotFound("Product not found")
    if product["seller_id"] != current_user.id:
        raise Forbidden("Only the seller can reply to reviews")

    existing_reply = await db.reviews.find_one({
        "parent_id": review_id,
        "user_id": current_user.id,
        "type": REPLY
    })
    if existing_reply:
        await db.reviews.update_one(
            {"id": existing_reply["id"]},
            {"$set": {"comment": reply_data.comment, "updated_at": datetime.utcnow()}}
        )
        reply = await db.reviews.find_one({"id": existing_reply["id"]})
        return Review(**reply)

    reply_obj = Review(
        product_id=parent["product_id"],
        user_id=current_user.id,
        user_name=current_user.display_name,
        type=REPLY,
        comment=reply_data.comment,
        parent_id=review_id
    )
    await db.reviews.insert_one(reply_obj.model_dump())
    return reply_obj

@router.put("/replies/{reply_id}", response_model=Review)
async def edit_reply(
    reply_id: str,
    reply_data: ReplyCreate,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    reply = await db.reviews.find_one({"id": reply_id, "type": REPLY})
    if not reply:
        raise NotFound("Reply not found")

    product = await db.products.find_one({"id": reply["product_id"]})
    if not product or product["seller_id"] != current_user.id:
        raise Forbidden("Only the seller can edit replies")

    await db.reviews.update_one(
        {"id": reply_id},
        {"$set": {"comment": reply_data.comment, "updated_at": datetime.utcnow()}}
    )

    updated_reply = await db.reviews.find_one({"id": reply_id})
    return Review(**updated_reply)
