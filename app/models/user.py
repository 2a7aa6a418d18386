from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class User(BaseModel):
    id: str  # subject issued by the auth provider
    email: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = ""
    role: str = "user"  # user, admin
    is_banned: bool = False
    payout_account_id: Optional[str] = None  # Stripe Connect account
    onboarding_complete: bool = False
    cart: List[str] = []  # product IDs
    favorites: List[str] = []  # product IDs
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return self.username or full_name or "User"

class PublicProfile(BaseModel):
    id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = ""

class RoleUpdate(BaseModel):
    role: str = Field(..., pattern="^(user|admin)$")

class PayoutBalance(BaseModel):
    available: float
    pending: float
    currency: str
