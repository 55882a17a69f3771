from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import Role


class Patron(BaseModel):
    patron_id: str
    name: str
    email: str
    role: Role
    borrowed_count: int
    max_borrow: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
