import math

from app.models.review import REVIEW

def round_rating(value: float) -> float:
    """Round half up to one decimal, e.g. 4.25 -> 4.3"""
    return math.floor(value * 10 + 0.5) / 10

async def update_product_rating(db, product_id: str):
    """Update product's average rating and count from its current reviews"""
    pipeline = [
        {"$match": {"product_id": product_id, "type": REVIEW, "rating": {"$ne": None}}},
        {"$group": {"_id": "$product_id", "average": {"$avg": "$rating"}, "count": {"$sum": 1}}}
    ]
    stats = await db.reviews.aggregate(pipeline).to_list(1)
    if stats:
        average_rating = round_rating(stats[0]["average"])
        review_count = stats[0]["count"]
    else:
        average_rating = 0.0
        review_count = 0

    await db.products.update_one(
        {"id": product_id},
        {"$set": {"average_rating": average_rating, "review_count": review_count}}
    )
    return average_rating, review_count
