from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Literal
import uuid
from datetime import datetime

NotificationType = Literal["MESSAGE", "SALE", "ORDER", "REVIEW", "SYSTEM"]

class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    type: NotificationType
    title: str  # fallback text when the client has no translation
    message: str
    title_key: Optional[str] = None  # i18n key rendered by the client
    message_key: Optional[str] = None
    params: Dict[str, Any] = {}
    link: str
    read: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    read_at: Optional[datetime] = None
