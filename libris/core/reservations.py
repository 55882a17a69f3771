#!/usr/bin/env python

"""
    Reservation queue for Libris.

    Each book has a FIFO of waiting reservations, oldest `reserved_at`
    first with the reservation id breaking ties. When a copy frees up the
    head of the queue is notified and the copy is bound to it until the
    patron checks it out, cancels, or the hold expires.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
from typing import List, Optional, Tuple
from libris.configs import RESERVATION_EXPIRY_DAYS
from libris.core import inventory
from libris.core.exceptions import (
    ConflictError,
    InvalidStateError,
    PermissionDeniedError,
)
from libris.core.models import (
    ACTIVE_RESERVATION_STATUSES,
    ItemStatus,
    NotificationKind,
    Reservation,
    ReservationStatus,
)
from libris.core.patrons import get_patron

logger = logging.getLogger(__name__)


def get_reservation(txn, reservation_id) -> Reservation:
    return txn.get(Reservation, reservation_id, label="Reservation")


def active_reservation(txn, patron_id, book_id) -> Optional[Reservation]:
    return txn.query(Reservation).filter(
        Reservation.patron_id == patron_id,
        Reservation.book_id == book_id,
        Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
    ).first()


def hold_on_item(txn, item_id) -> Optional[Reservation]:
    """The notified reservation a copy is currently bound to, if any."""
    return txn.query(Reservation).filter(
        Reservation.item_id == item_id,
        Reservation.status == ReservationStatus.NOTIFIED,
    ).first()


def reserve(txn, patron_id, book_id) -> Reservation:
    """Queues a patron for the next free copy of a book. Allowed even while
    copies are on the shelf.
    """
    patron = get_patron(txn, patron_id)
    book = inventory.get_book(txn, book_id)
    if existing := active_reservation(txn, patron.patron_id, book.id):
        raise ConflictError(
            f"You already have an active reservation for '{book.title}'.",
            reservation_id=existing.id)
    reservation = txn.add(Reservation(
        patron_id=patron.patron_id,
        book_id=book.id,
        item_id=None,
        reserved_at=txn.now,
        status=ReservationStatus.WAITING,
    ))
    txn.flush()
    logger.info(f"Reservation {reservation.id}: {patron.patron_id} waiting for book {book.id}")
    return reservation


def queue(txn, book_id) -> List[Reservation]:
    return txn.query(Reservation).filter(
        Reservation.book_id == book_id,
        Reservation.status == ReservationStatus.WAITING,
    ).order_by(Reservation.reserved_at, Reservation.id).all()


def waiting_count(txn, book_id) -> int:
    return txn.query(Reservation).filter(
        Reservation.book_id == book_id,
        Reservation.status == ReservationStatus.WAITING,
    ).count()


def notify_next(txn, book_id, item_id) -> Optional[Reservation]:
    """Binds a freed copy to the oldest waiting reservation of its book.

    Does nothing, and leaves the copy on the shelf, when the queue is empty
    or the copy is no longer free to hand out.
    """
    item = inventory.get_item(txn, item_id)
    if item.book_id != book_id or item.status is not ItemStatus.AVAILABLE:
        logger.info(f"Copy {item_id} is not free for book {book_id}; queue left untouched")
        return None
    if hold_on_item(txn, item.id) is not None:
        return None

    reservation = txn.query(Reservation).filter(
        Reservation.book_id == book_id,
        Reservation.status == ReservationStatus.WAITING,
    ).order_by(Reservation.reserved_at, Reservation.id).first()
    if reservation is None:
        return None

    reservation.transition(ReservationStatus.NOTIFIED)
    reservation.notified_at = txn.now
    reservation.item_id = item.id
    book = inventory.get_book(txn, book_id)
    txn.emit(
        reservation.patron_id,
        NotificationKind.RESERVATION_READY,
        reservation_id=reservation.id,
        book_id=book.id,
        item_id=item.id,
        title=book.title,
        expires_at=(txn.now + datetime.timedelta(days=RESERVATION_EXPIRY_DAYS)).isoformat(),
    )
    txn.flush()
    logger.info(f"Reservation {reservation.id} notified: copy {item.barcode} held")
    return reservation


def cancel(txn, reservation_id, patron_id=None) -> Reservation:
    """Cancels a waiting or notified reservation. A canceled reservation
    keeps the `item_id` it held so the caller can hand that copy on.
    """
    reservation = get_reservation(txn, reservation_id)
    if patron_id is not None and reservation.patron_id != patron_id:
        raise PermissionDeniedError(
            "You can only cancel your own reservations.", reservation_id=reservation.id)
    reservation.transition(ReservationStatus.CANCELED)
    txn.flush()
    return reservation


def fulfill(txn, reservation: Reservation, item_id) -> Reservation:
    if reservation.item_id is not None and reservation.item_id != item_id:
        raise InvalidStateError(
            f"Reservation {reservation.id} holds a different copy.",
            state=reservation.status.value)
    reservation.transition(ReservationStatus.FULFILLED)
    reservation.item_id = item_id
    return reservation


def supersede(txn, reservation: Reservation) -> Optional[Reservation]:
    """Cancels a reservation whose patron was just lent another copy of the
    book. A copy it held goes to the next patron in line; returns the
    reservation newly notified for it, if any.
    """
    held_item_id = reservation.item_id
    reservation.transition(ReservationStatus.CANCELED)
    txn.flush()
    logger.info(f"Reservation {reservation.id} superseded by a loan of another copy")
    if held_item_id is None:
        return None
    return notify_next(txn, reservation.book_id, held_item_id)


def expire_notified(txn) -> List[Tuple[Reservation, Optional[Reservation]]]:
    """Cancels holds left unclaimed for `RESERVATION_EXPIRY_DAYS` and offers
    each released copy to the next patron in line. Returns pairs of
    (expired reservation, newly notified reservation or None).
    """
    cutoff = txn.now - datetime.timedelta(days=RESERVATION_EXPIRY_DAYS)
    stale = txn.query(Reservation).filter(
        Reservation.status == ReservationStatus.NOTIFIED,
        Reservation.notified_at < cutoff,
    ).order_by(Reservation.notified_at, Reservation.id).all()

    results = []
    for reservation in stale:
        reservation.transition(ReservationStatus.CANCELED)
        txn.flush()
        logger.info(f"Reservation {reservation.id} expired unclaimed")
        successor = None
        if reservation.item_id is not None:
            successor = notify_next(txn, reservation.book_id, reservation.item_id)
        results.append((reservation, successor))
    return results


def list_for_patron(txn, patron_id, active_only=False) -> List[Reservation]:
    q = txn.query(Reservation).filter(Reservation.patron_id == patron_id)
    if active_only:
        q = q.filter(Reservation.status.in_(ACTIVE_RESERVATION_STATUSES))
    return q.order_by(Reservation.reserved_at.desc(), Reservation.id.desc()).all()
