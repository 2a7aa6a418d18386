from pydantic import BaseModel, Field
from typing import List, Optional
import uuid
from datetime import datetime

class PurchaseRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    buyer_id: str
    product_id: str
    seller_id: str
    amount: float
    currency: str = "eur"
    external_session_id: str
    status: str = "completed"
    created_at: datetime = Field(default_factory=datetime.utcnow)

class CheckoutRequest(BaseModel):
    product_ids: List[str] = Field(..., min_length=1)

class CheckoutResponse(BaseModel):
    url: str

class OrderProduct(BaseModel):
    id: str
    title: str
    price: float
    preview_image_url: Optional[str] = ""

class Order(BaseModel):
    purchase: PurchaseRecord
    product: Optional[OrderProduct] = None  # None once the product is deleted

class Sale(BaseModel):
    purchase: PurchaseRecord
    product_title: str
