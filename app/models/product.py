from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from typing import List, Literal, Optional, Union
from enum import Enum
import uuid
from datetime import datetime

class ProductCategory(str, Enum):
    N8N = "n8n"
    MAKE = "Make"
    ZAPIER = "Zapier"
    OTHER = "Autre"

# Discriminator values stored in products.product_type
AUTOMATION = "automation"

class Product(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    product_type: Literal["automation"] = AUTOMATION
    title: str
    description: str
    price: float
    category: ProductCategory
    tags: List[str] = []
    seller_id: str
    file_url: str
    preview_image_url: Optional[str] = ""
    average_rating: float = 0.0
    review_count: int = 0
    is_certified: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class ProductPublic(BaseModel):
    """Catalog view of a product. Never carries the paid file location."""
    id: str
    product_type: str
    title: str
    description: str
    price: float
    category: ProductCategory
    tags: List[str] = []
    seller_id: str
    preview_image_url: Optional[str] = ""
    average_rating: float = 0.0
    review_count: int = 0
    is_certified: bool = False
    created_at: datetime

    @classmethod
    def from_product(cls, product: Product) -> "ProductPublic":
        return cls(**product.model_dump(exclude={"file_url", "updated_at"}))

class ProductCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=20, max_length=2000)
    price: float = Field(..., ge=1, le=1000)
    category: ProductCategory
    tags: List[str] = []
    file_url: HttpUrl
    preview_image_url: Optional[Union[HttpUrl, Literal[""]]] = None

class ProductUpdate(BaseModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=20, max_length=2000)
    price: float = Field(..., ge=1, le=1000)
    preview_image_url: Optional[Union[HttpUrl, Literal[""]]] = None

class ProductPage(BaseModel):
    products: List[ProductPublic]
    total_count: int
    total_pages: int
    current_page: int
    limit: int
