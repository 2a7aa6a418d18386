from pydantic import BaseModel, Field
from typing import List, Literal, Optional
import uuid
from datetime import datetime

REVIEW = "review"
REPLY = "reply"

class Review(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    product_id: str
    user_id: str
    user_name: str
    type: Literal["review", "reply"] = REVIEW
    rating: Optional[int] = Field(None, ge=1, le=5)  # reviews only
    comment: str = ""
    parent_id: Optional[str] = None  # replies only
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class ReviewCreate(BaseModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field("", max_length=500)

class ReplyCreate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=1000)

class ReviewResponse(BaseModel):
    review: Review
    can_edit: bool = False
    replies: List[Review] = []
