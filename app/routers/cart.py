from fastapi import APIRouter, Depends
from typing import List

from app.models.product import Product, ProductPublic
from app.models.user import User
from app.db.session import get_db
from app.core.errors import NotFound
from app.services.auth import get_current_user

router = APIRouter()

@router.get("/cart", response_model=List[ProductPublic])
async def get_cart(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    """Get the products in the user's cart, skipping deleted ones"""
    products = await db.products.find({"id": {"$in": current_user.cart}}).to_list(100)
    by_id = {p["id"]: p for p in products}
    return [ProductPublic.from_product(Product(**by_id[pid])) for pid in current_user.cart if pid in by_id]

@router.post("/cart/{product_id}")
async def add_to_cart(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")

    if product_id in current_user.cart:
        return {"success": False, "message": "Already in cart"}

    await db.users.update_one(
        {"id": current_user.id},
        {"$addToSet": {"cart": product_id}}
    )
    return {"success": True, "message": "Added to cart"}

@router.delete("/cart/{product_id}")
async def remove_from_cart(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    await db.users.update_one(
        {"id": current_user.id},
        {"$pull": {"cart": product_id}}
    )
    return {"success": True, "message": "Removed from cart"}
