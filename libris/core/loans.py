#!/usr/bin/env python

"""
    Loan ledger for Libris: checkout, return and renewal.

    Direct checkout and borrow-request approval both issue loans through
    `grant_loan`, so the borrow cap, copy availability and reservation
    holds are checked in exactly one place.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
from typing import List, Optional, Tuple
from libris.configs import (
    FINE_PER_DAY,
    LOAN_PERIOD_DAYS,
    MAX_RENEWALS,
    RENEWAL_EXTENSION_DAYS,
)
from libris.core import inventory, reservations
from libris.core.exceptions import InvalidStateError, LimitExceededError
from libris.core.models import (
    ItemStatus,
    Loan,
    LoanStatus,
    Patron,
    Reservation,
    ReservationStatus,
)
from libris.core.patrons import get_patron
from libris.core.utils import days_late

logger = logging.getLogger(__name__)


def compute_fine(due_date, at, fine_per_day=None) -> Tuple[int, float]:
    """Returns `(days_overdue, fine)` for a loan due at `due_date` as of `at`.

    Days are whole days rounded up. The fine is recomputed from scratch,
    never accumulated, so calling this twice for the same `at` agrees.
    """
    per_day = FINE_PER_DAY if fine_per_day is None else fine_per_day
    days = days_late(due_date, at)
    return days, round(days * per_day, 2)


def ensure_under_cap(patron: Patron):
    if not patron.can_borrow:
        raise LimitExceededError(
            f"Patron {patron.patron_id} has reached the borrowing limit "
            f"({patron.max_borrow} books).",
            limit=patron.max_borrow,
        )


def get_loan(txn, loan_id) -> Loan:
    return txn.get(Loan, loan_id, label="Loan")


def _claim_hold(txn, patron, item, book, fulfills_reservation_id=None) -> Optional[Reservation]:
    """Returns the notified reservation this checkout fulfills, if any.

    A copy bound to someone else's notified reservation cannot be lent to
    anybody else until that reservation is fulfilled or canceled.
    """
    if fulfills_reservation_id is not None:
        reservation = reservations.get_reservation(txn, fulfills_reservation_id)
        if reservation.patron_id != patron.patron_id or reservation.book_id != book.id:
            raise InvalidStateError(
                f"Reservation {reservation.id} does not belong to patron "
                f"{patron.patron_id} for book {book.id}.",
                state=reservation.status.value)
        if reservation.status is not ReservationStatus.NOTIFIED:
            raise InvalidStateError(
                f"Reservation {reservation.id} is not ready for pickup.",
                state=reservation.status.value)
        if reservation.item_id != item.id:
            raise InvalidStateError(
                f"Reservation {reservation.id} holds copy {reservation.item_id}, not {item.id}.",
                state=reservation.status.value)
        return reservation

    hold = reservations.hold_on_item(txn, item.id)
    if hold is not None and hold.patron_id != patron.patron_id:
        raise InvalidStateError(
            f"Book item {item.barcode} is held for another patron's reservation.",
            state="held")
    return hold


def grant_loan(txn, patron_id, item_id, book_id, issued_by=None,
               fulfills_reservation_id=None) -> Loan:
    """Validates and applies the checkout effect inside `txn`."""
    patron = get_patron(txn, patron_id)
    ensure_under_cap(patron)

    item = inventory.get_item(txn, item_id)
    if item.book_id != book_id:
        raise InvalidStateError(
            f"Book item {item.barcode} does not belong to book {book_id}.",
            state="wrong_book")
    if item.status is not ItemStatus.AVAILABLE:
        raise InvalidStateError(
            f"Book item {item.barcode} is not available. Current status: {item.status.value}",
            state=item.status.value)

    book = inventory.get_book(txn, book_id)
    if not book.is_borrowable:
        raise InvalidStateError(
            f"No available copies of '{book.title}'.", state="unavailable")

    reservation = _claim_hold(txn, patron, item, book, fulfills_reservation_id)
    # a loan of another copy ends the patron's own wait for this book
    superseded = None
    if reservation is None:
        superseded = reservations.active_reservation(txn, patron.patron_id, book.id)

    loan = txn.add(Loan(
        patron_id=patron.patron_id,
        item_id=item.id,
        book_id=book.id,
        issue_date=txn.now,
        due_date=txn.now + datetime.timedelta(days=LOAN_PERIOD_DAYS),
        status=LoanStatus.BORROWED,
        fine=0.0,
        renew_count=0,
        days_overdue=0,
        issued_by=issued_by,
    ))
    inventory.mark_item_borrowed(txn, item)
    inventory.adjust_available_copies(txn, book, -1)
    patron.borrowed_count += 1
    if reservation is not None:
        reservations.fulfill(txn, reservation, item.id)
    elif superseded is not None:
        reservations.supersede(txn, superseded)

    txn.flush()
    logger.info(
        f"Loan {loan.id}: item {item.barcode} of book {book.id} to {patron.patron_id}, "
        f"due {loan.due_date.isoformat()}")
    return loan


def checkout(txn, patron_id, item_id, book_id, fulfills_reservation_id=None,
             issued_by=None) -> Loan:
    return grant_loan(
        txn, patron_id, item_id, book_id,
        issued_by=issued_by,
        fulfills_reservation_id=fulfills_reservation_id,
    )


def return_loan(txn, loan_id) -> Loan:
    """Closes an active loan, settles its fine and puts the copy back on
    the shelf. Reservation fan-out for the freed copy is the caller's job,
    right after this transaction commits.
    """
    loan = get_loan(txn, loan_id)
    if not loan.is_active:
        raise InvalidStateError(
            f"Loan {loan.id} has already been returned.", state=loan.status.value)

    item = inventory.get_item(txn, loan.item_id)
    book = inventory.get_book(txn, loan.book_id)
    patron = get_patron(txn, loan.patron_id)

    days, fine = compute_fine(loan.due_date, txn.now)
    if days > 0:
        loan.days_overdue = days
        loan.fine = fine

    loan.transition(LoanStatus.RETURNED)
    loan.return_date = txn.now
    inventory.mark_item_available(txn, item)
    inventory.adjust_available_copies(txn, book, +1)
    patron.borrowed_count = max(0, patron.borrowed_count - 1)

    logger.info(f"Loan {loan.id} returned by {patron.patron_id}, fine {loan.fine}")
    return loan


def renew(txn, loan_id) -> Loan:
    """Extends the due date by `RENEWAL_EXTENSION_DAYS` counted from the
    current due date. Overdue loans stay renewable; accrued fines stay.
    """
    loan = get_loan(txn, loan_id)
    if not loan.is_active:
        raise InvalidStateError(
            f"Only active loans can be renewed; loan {loan.id} is {loan.status.value}.",
            state=loan.status.value)
    if loan.renew_count >= MAX_RENEWALS:
        raise LimitExceededError(
            f"Maximum renewal limit ({MAX_RENEWALS}) reached.", limit=MAX_RENEWALS)

    loan.due_date = loan.due_date + datetime.timedelta(days=RENEWAL_EXTENSION_DAYS)
    loan.renew_count += 1
    if loan.status is LoanStatus.OVERDUE and loan.due_date > txn.now:
        loan.transition(LoanStatus.BORROWED)
        loan.days_overdue = 0
    return loan


def has_active_loan(txn, patron_id, book_id) -> bool:
    return txn.query(Loan.id).filter(
        Loan.patron_id == patron_id,
        Loan.book_id == book_id,
        Loan.is_active,
    ).first() is not None


def active_loans(txn, patron_id) -> List[Loan]:
    return txn.query(Loan).filter(
        Loan.patron_id == patron_id,
        Loan.is_active,
    ).order_by(Loan.issue_date.desc(), Loan.id.desc()).all()


def loan_history(txn, patron_id, limit=100) -> List[Loan]:
    return txn.query(Loan).filter(Loan.patron_id == patron_id).order_by(
        Loan.issue_date.desc(), Loan.id.desc()).limit(limit).all()


def overdue_loans(txn, limit=100) -> List[Loan]:
    """Active loans past their due date as of `txn.now`, most overdue first.
    Fines shown are those stored by the last reconciliation or return.
    """
    return txn.query(Loan).filter(
        Loan.is_active,
        Loan.due_date < txn.now,
    ).order_by(Loan.due_date, Loan.id).limit(limit).all()
