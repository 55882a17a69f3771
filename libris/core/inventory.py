#!/usr/bin/env python

"""
    Inventory store for Libris: books and their physical copies.

    Every mutator here takes the `Transaction` it runs in. Copy statuses and
    the `available_copies` cache on their book must only change together,
    inside the same transaction.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from typing import List, Optional
from sqlalchemy import func
from libris.core.exceptions import ConflictError, InvalidStateError
from libris.core.models import (
    ACTIVE_LOAN_STATUSES,
    Book,
    BookItem,
    ItemStatus,
    Loan,
    Patron,
)

logger = logging.getLogger(__name__)


def get_book(txn, book_id) -> Book:
    return txn.get(Book, book_id, label="Book")


def get_item(txn, item_id) -> BookItem:
    return txn.get(BookItem, item_id, label="Book item")


def get_available_items(txn, book_id) -> List[BookItem]:
    """Available copies of a book, ordered by barcode then id."""
    return txn.query(BookItem).filter(
        BookItem.book_id == book_id,
        BookItem.status == ItemStatus.AVAILABLE,
    ).order_by(BookItem.barcode, BookItem.id).all()


def mark_item_borrowed(txn, item: BookItem) -> BookItem:
    return item.transition(ItemStatus.BORROWED)


def mark_item_available(txn, item: BookItem) -> BookItem:
    return item.transition(ItemStatus.AVAILABLE)


def adjust_available_copies(txn, book: Book, delta: int) -> Book:
    updated = book.available_copies + delta
    if updated < 0:
        raise InvalidStateError(
            f"No available copies of '{book.title}'.",
            state="unavailable", available_copies=book.available_copies)
    if updated > book.total_copies:
        raise InvalidStateError(
            f"Book {book.id} would have more available copies than it owns.",
            state="overfull", total_copies=book.total_copies)
    book.available_copies = updated
    return book


def add_book(txn, title, isbn=None, authors=None, categories=None,
             published_at=None, cover_url=None) -> Book:
    book = txn.add(Book(
        title=title,
        isbn=isbn,
        authors=list(authors or []),
        categories=list(categories or []),
        total_copies=0,
        available_copies=0,
        published_at=published_at,
        cover_url=cover_url,
    ))
    txn.flush()
    logger.info(f"Added book {book.id} '{title}'")
    return book


def add_item(txn, book_id, barcode, location='', condition='good') -> BookItem:
    """Registers a new available copy and counts it on its book."""
    book = get_book(txn, book_id)
    if txn.query(BookItem).filter(BookItem.barcode == barcode).first():
        raise ConflictError(f"Barcode '{barcode}' is already in use.", barcode=barcode)
    item = txn.add(BookItem(
        book_id=book.id,
        barcode=barcode,
        status=ItemStatus.AVAILABLE,
        location=location,
        condition=condition,
        created_at=txn.now,
    ))
    book.total_copies += 1
    book.available_copies += 1
    txn.flush()
    return item


def recompute_counters(txn, book_id: Optional[int] = None) -> List[dict]:
    """Repairs drifted `available_copies`, `total_copies` and
    `borrowed_count` from the item and loan records. Returns the
    corrections made. Not part of any circulation operation.
    """
    corrections = []

    counts = dict(txn.query(BookItem.book_id, func.count(BookItem.id)).filter(
        BookItem.status == ItemStatus.AVAILABLE,
    ).group_by(BookItem.book_id).all())
    totals = dict(txn.query(BookItem.book_id, func.count(BookItem.id)).group_by(
        BookItem.book_id).all())

    books = txn.query(Book)
    if book_id is not None:
        books = books.filter(Book.id == book_id)
    for book in books.order_by(Book.id):
        available = counts.get(book.id, 0)
        total = totals.get(book.id, 0)
        if book.available_copies != available or book.total_copies != total:
            corrections.append({
                "book_id": book.id,
                "available_copies": [book.available_copies, available],
                "total_copies": [book.total_copies, total],
            })
            book.available_copies = available
            book.total_copies = total

    if book_id is None:
        active = dict(txn.query(Loan.patron_id, func.count(Loan.id)).filter(
            Loan.status.in_(ACTIVE_LOAN_STATUSES),
        ).group_by(Loan.patron_id).all())
        for patron in txn.query(Patron).order_by(Patron.patron_id):
            borrowed = active.get(patron.patron_id, 0)
            if patron.borrowed_count != borrowed:
                corrections.append({
                    "patron_id": patron.patron_id,
                    "borrowed_count": [patron.borrowed_count, borrowed],
                })
                patron.borrowed_count = borrowed

    for correction in corrections:
        logger.warning(f"Counter drift repaired: {correction}")
    return corrections
