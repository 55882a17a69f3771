from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import ReservationStatus


class Reservation(BaseModel):
    id: int
    patron_id: str
    book_id: int
    item_id: Optional[int] = None
    reserved_at: datetime
    notified_at: Optional[datetime] = None
    status: ReservationStatus

    class Config:
        from_attributes = True
