from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import BorrowRequestStatus


class BorrowRequest(BaseModel):
    id: int
    patron_id: str
    book_id: int
    item_id: Optional[int] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    status: BorrowRequestStatus
    member_note: Optional[str] = None
    librarian_note: Optional[str] = None
    processed_by: Optional[str] = None

    class Config:
        from_attributes = True
