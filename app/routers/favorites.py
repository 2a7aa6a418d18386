from fastapi import APIRouter, Depends
from typing import List

from app.models.product import Product, ProductPublic
from app.models.user import User
from app.db.session import get_db
from app.core.errors import NotFound
from app.services.auth import get_current_user

router = APIRouter()

@router.get("/favorites", response_model=List[ProductPublic])
async def get_my_favorites(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    """Get the user's favorite products with full details"""
    products = await db.products.find({"id": {"$in": current_user.favorites}}).to_list(100)
    return [ProductPublic.from_product(Product(**product)) for product in products]

@router.get("/favorites/ids", response_model=List[str])
async def get_favorite_ids(current_user: User = Depends(get_current_user)):
    return current_user.favorites

@router.post("/favorites/{product_id}")
async def add_to_favorites(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")

    if product_id in current_user.favorites:
        return {"success": False, "message": "Already in favorites"}

    await db.users.update_one(
        {"id": current_user.id},
        {"$addToSet": {"favorites": product_id}}
    )
    return {"success": True, "message": "Added to favorites"}

@router.delete("/favorites/{product_id}")
async def remove_from_favorites(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    await db.users.update_one(
        {"id": current_user.id},
        {"$pull": {"favorites": product_id}}
    )
    return {"success": True, "message": "Removed from favorites"}

@router.post("/favorites/{product_id}/toggle")
async def toggle_favorite(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    """Add the product to favorites if absent, remove it otherwise"""
    if product_id in current_user.favorites:
        await db.users.update_one({"id": current_user.id}, {"$pull": {"favorites": product_id}})
        return {"success": True, "action": "removed", "message": "Removed from favorites"}

    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")

    await db.users.update_one({"id": current_user.id}, {"$addToSet": {"favorites": product_id}})
    return {"success": True, "action": "added", "message": "Added to favorites"}
