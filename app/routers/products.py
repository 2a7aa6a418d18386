from fastapi import APIRouter, Depends, Request, Query
from typing import List, Optional
from datetime import datetime
import math
import re

from app.models.product import Product, ProductCreate, ProductUpdate, ProductPublic, ProductPage, ProductCategory
from app.models.user import User
from app.db.session import get_db
from app.core.errors import Forbidden, NotFound, SellerNotReady
from app.services.auth import get_current_user
from app.services.log import log_activity
from app.services.ratelimit import rate_limit_user
from app.services.storage import ObjectStorage, get_storage

router = APIRouter()

SORT_OPTIONS = {
    "newest": [("created_at", -1)],
    "price_asc": [("price", 1)],
    "price_desc": [("price", -1)],
}

@router.post(
    "/products",
    response_model=Product,
    dependencies=[Depends(rate_limit_user("create_automation"))]
)
async def create_product(
    request: Request,
    product_data: ProductCreate,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    # Sellers must be able to get paid before listing anything
    if not current_user.payout_account_id:
        raise SellerNotReady("Configure your payouts before selling")

    product_dict = product_data.model_dump()
    product_dict["file_url"] = str(product_data.file_url)
    product_dict["preview_image_url"] = str(product_data.preview_image_url or "")
    product_dict["seller_id"] = current_user.id

    product_obj = Product(**product_dict)
    await db.products.insert_one(product_obj.model_dump())

    await log_activity(
        db,
        actor=current_user,
        action="product_created",
        details=f"Created product '{product_obj.title}' in category '{product_obj.category}' for {product_obj.price}",
        target_id=product_obj.id,
        target_type="product",
        request=request
    )

    return product_obj

@router.get("/products", response_model=ProductPage)
async def get_products(
    query: Optional[str] = None,
    categories: List[ProductCategory] = Query([]),
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db=Depends(get_db)
):
    filters = {}
    if query:
        filters["title"] = {"$regex": re.escape(query), "$options": "i"}
    if categories:
        filters["category"] = {"$in": [c.value for c in categories]}
    if min_price is not None or max_price is not None:
        filters["price"] = {}
        if min_price is not None:
            filters["price"]["$gte"] = min_price
        if max_price is not None:
            filters["price"]["$lte"] = max_price

    total_count = await db.products.count_documents(filters)
    products = await db.products.find(filters) \
        .sort(SORT_OPTIONS.get(sort, SORT_OPTIONS["newest"])) \
        .skip((page - 1) * limit) \
        .limit(limit) \
        .to_list(limit)

    return ProductPage(
        products=[ProductPublic.from_product(Product(**p)) for p in products],
        total_count=total_count,
        total_pages=math.ceil(total_count / limit),
        current_page=page,
        limit=limit
    )

@router.get("/products/{product_id}", response_model=ProductPublic)
async def get_product(product_id: str, db=Depends(get_db)):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")
    return ProductPublic.from_product(Product(**product))

@router.get("/my-products", response_model=List[Product])
async def get_my_products(current_user: User = Depends(get_current_user), db=Depends(get_db)):
    products = await db.products.find({"seller_id": current_user.id}).sort("created_at", -1).to_list(100)
    return [Product(**product) for product in products]

@router.put("/products/{product_id}", response_model=Product)
async def update_product(
    product_id: str,
    product_data: ProductUpdate,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")
    if product["seller_id"] != current_user.id:
        raise Forbidden("You can only edit your own products")

    update_data = {
        "title": product_data.title,
        "description": product_data.description,
        "price": product_data.price,
        "updated_at": datetime.utcnow()
    }
    if product_data.preview_image_url:
        update_data["preview_image_url"] = str(product_data.preview_image_url)

    await db.products.update_one({"id": product_id}, {"$set": update_data})

    updated_product = await db.products.find_one({"id": product_id})
    return Product(**updated_product)

@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db)
):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")
    if product["seller_id"] != current_user.id:
        raise Forbidden("You are not allowed to delete this product")

    # Purchases keep their product_id; dashboards show it as deleted
    await db.products.delete_one({"id": product_id})
    return {"success": True}

@router.get("/products/{product_id}/download")
async def download_product(
    product_id: str,
    current_user: User = Depends(get_current_user),
    db=Depends(get_db),
    storage: ObjectStorage = Depends(get_storage)
):
    product = await db.products.find_one({"id": product_id})
    if not product:
        raise NotFound("Product not found")

    if product["seller_id"] != current_user.id:
        purchase = await db.purchases.find_one({
            "buyer_id": current_user.id,
            "product_id": product_id
        })
        if not purchase:
            raise Forbidden("You must purchase this product to download it")

    key = storage.key_from_url(product["file_url"])
    filename = key.rsplit("/", 1)[-1] or f"{product_id}.json"
    return {"url": storage.presign_download(key, filename)}
