#!/usr/bin/env python
"""
    Book and BookItem schemas for Libris.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details.
"""

from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from libris.core.models import ItemStatus


class Book(BaseModel):
    id: int
    title: str
    isbn: Optional[str] = None
    authors: List[str] = []
    categories: List[str] = []
    total_copies: int
    available_copies: int
    is_borrowable: bool = False
    # waiting reservations, filled in by the book route
    waiting_count: int = 0
    published_at: Optional[datetime] = None
    cover_url: Optional[str] = None

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "title": "The Left Hand of Darkness",
                "isbn": "9780441478125",
                "authors": ["Ursula K. Le Guin"],
                "categories": ["fiction"],
                "total_copies": 3,
                "available_copies": 2,
                "is_borrowable": True,
                "waiting_count": 0,
                "published_at": "1969-03-01T00:00:00Z",
                "cover_url": None
            }
        }


class BookItem(BaseModel):
    id: int
    book_id: int
    barcode: str
    status: ItemStatus
    location: str
    condition: str

    class Config:
        from_attributes = True
