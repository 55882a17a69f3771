from pydantic import BaseModel
from typing import Any, Dict, Optional
from datetime import datetime
from libris.core.models import NotificationKind


class Notification(BaseModel):
    id: Optional[int] = None
    patron_id: str
    kind: NotificationKind
    payload: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    is_read: bool = False

    class Config:
        from_attributes = True
