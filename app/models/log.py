from pydantic import BaseModel, Field
from typing import Literal, Optional
import uuid
from datetime import datetime

ActivityAction = Literal[
    "product_created",
    "product_deleted",
    "review_deleted",
    "user_banned",
    "user_unbanned",
    "role_changed",
]

class ActivityLog(BaseModel):
    """Moderation trail entry; the actor is denormalized so entries outlive users"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    username: str
    action: ActivityAction
    details: str
    target_id: Optional[str] = None
    target_type: Optional[Literal["product", "review", "user"]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
