from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime


class PatronRegistration(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    isbn: Optional[str] = Field(default=None, max_length=20)
    authors: List[str] = []
    categories: List[str] = []
    published_at: Optional[datetime] = None
    cover_url: Optional[str] = None


class ItemCreate(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=64)
    location: str = ''
    condition: str = 'good'


class CheckoutRequest(BaseModel):
    book_id: int
    item_id: int
    # librarians may check out on behalf of a patron
    patron_id: Optional[str] = None
    fulfills_reservation_id: Optional[int] = None


class ReservationCreate(BaseModel):
    book_id: int


class BorrowRequestCreate(BaseModel):
    book_id: int
    item_id: Optional[int] = None
    member_note: Optional[str] = None


class ApproveRequest(BaseModel):
    item_id: int
    note: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ReconciliationRun(BaseModel):
    now: Optional[datetime] = None
    batch_size: Optional[int] = Field(default=None, gt=0)
