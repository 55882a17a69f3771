#!/usr/bin/env python

"""
    Borrow-request workflow for Libris.

    Members ask for a book; a librarian approves (issuing the loan through
    the same `grant_loan` effect as direct checkout) or rejects it.
    pending -> approved | rejected | cancelled, and the terminal states
    are final.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from typing import List, Optional
from libris.core import inventory, loans
from libris.core.exceptions import ConflictError, InvalidStateError
from libris.core.models import (
    BorrowRequest,
    BorrowRequestStatus,
    ItemStatus,
    NotificationKind,
)
from libris.core.patrons import get_patron

logger = logging.getLogger(__name__)


def _clean(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    return note.strip() or None


def get_request(txn, request_id) -> BorrowRequest:
    return txn.get(BorrowRequest, request_id, label="Borrow request")


def _ensure_pending(request: BorrowRequest):
    if request.status is not BorrowRequestStatus.PENDING:
        raise InvalidStateError(
            f"Borrow request {request.id} is not pending.", state=request.status.value)


def submit(txn, patron_id, book_id, item_id=None, member_note=None) -> BorrowRequest:
    patron = get_patron(txn, patron_id)
    book = inventory.get_book(txn, book_id)

    if item_id is not None:
        item = inventory.get_item(txn, item_id)
        if item.book_id != book.id:
            raise InvalidStateError(
                f"Book item {item.barcode} does not belong to book {book.id}.",
                state="wrong_book")
        if item.status is not ItemStatus.AVAILABLE:
            raise InvalidStateError(
                f"Book item {item.barcode} is not available.", state=item.status.value)

    pending = txn.query(BorrowRequest).filter(
        BorrowRequest.patron_id == patron.patron_id,
        BorrowRequest.book_id == book.id,
        BorrowRequest.status == BorrowRequestStatus.PENDING,
    ).first()
    if pending is not None:
        raise ConflictError(
            "You already have a pending request for this book.", request_id=pending.id)
    if loans.has_active_loan(txn, patron.patron_id, book.id):
        raise ConflictError("You already have an active loan for this book.")
    loans.ensure_under_cap(patron)

    request = txn.add(BorrowRequest(
        patron_id=patron.patron_id,
        book_id=book.id,
        item_id=item_id,
        requested_at=txn.now,
        status=BorrowRequestStatus.PENDING,
        member_note=_clean(member_note),
    ))
    txn.flush()
    logger.info(f"Borrow request {request.id}: {patron.patron_id} asks for book {book.id}")
    return request


def cancel(txn, request_id, patron_id) -> BorrowRequest:
    request = get_request(txn, request_id)
    if request.patron_id != patron_id:
        raise InvalidStateError(
            "You can only cancel your own requests.", state=request.status.value)
    _ensure_pending(request)
    request.transition(BorrowRequestStatus.CANCELLED)
    request.processed_at = txn.now
    return request


def approve(txn, request_id, item_id, librarian_id, note=None) -> BorrowRequest:
    """Issues the loan for a pending request. Availability and the borrow
    cap are checked again here, since either may have changed since the
    request was submitted; on failure the request stays pending.
    """
    request = get_request(txn, request_id)
    _ensure_pending(request)

    loan = loans.grant_loan(
        txn, request.patron_id, item_id, request.book_id, issued_by=librarian_id)

    request.transition(BorrowRequestStatus.APPROVED)
    request.item_id = item_id
    request.librarian_note = _clean(note)
    request.processed_by = librarian_id
    request.processed_at = txn.now

    book = inventory.get_book(txn, request.book_id)
    txn.emit(
        request.patron_id,
        NotificationKind.BORROW_APPROVED,
        request_id=request.id,
        loan_id=loan.id,
        book_id=book.id,
        title=book.title,
        due_date=loan.due_date.isoformat(),
    )
    logger.info(f"Borrow request {request.id} approved by {librarian_id} as loan {loan.id}")
    return request


def reject(txn, request_id, librarian_id, reason) -> BorrowRequest:
    request = get_request(txn, request_id)
    _ensure_pending(request)
    request.transition(BorrowRequestStatus.REJECTED)
    request.librarian_note = _clean(reason)
    request.processed_by = librarian_id
    request.processed_at = txn.now

    book = inventory.get_book(txn, request.book_id)
    txn.emit(
        request.patron_id,
        NotificationKind.BORROW_REJECTED,
        request_id=request.id,
        book_id=book.id,
        title=book.title,
        reason=request.librarian_note,
    )
    logger.info(f"Borrow request {request.id} rejected by {librarian_id}")
    return request


def list_for_patron(txn, patron_id, limit=100) -> List[BorrowRequest]:
    return txn.query(BorrowRequest).filter(
        BorrowRequest.patron_id == patron_id,
    ).order_by(BorrowRequest.requested_at.desc(), BorrowRequest.id.desc()).limit(limit).all()


def list_all(txn, status=None) -> List[BorrowRequest]:
    q = txn.query(BorrowRequest)
    if status is not None:
        q = q.filter(BorrowRequest.status == BorrowRequestStatus(status))
    return q.order_by(BorrowRequest.requested_at.desc(), BorrowRequest.id.desc()).all()
