import logging
from typing import List, Optional
from libris.core import (
    borrow_requests,
    inventory,
    loans,
    notifications,
    patrons,
    reconciler,
    reservations,
)
from libris.core.db import SessionLocal
from libris.core.models import Role
from libris.core.transactions import run_transaction

logger = logging.getLogger(__name__)


class LibrisAPI:
    """Entry points for every circulation operation.

    Each call is one atomic unit run through `run_transaction`; operations
    that free a copy follow up with reservation fan-out in a second unit
    once the first has committed.
    """

    session_factory = SessionLocal
    dispatchers = None

    @classmethod
    def run(cls, work, *args, now=None, **kwargs):
        return run_transaction(
            work, *args,
            session_factory=cls.session_factory,
            dispatchers=cls.dispatchers,
            now=now,
            **kwargs
        )

    # Patrons and catalog

    @classmethod
    def register_patron(cls, patron_id: str, name: str, email: str, role: Role = Role.MEMBER):
        return cls.run(patrons.register_patron, patron_id, name, email, role=role)

    @classmethod
    def get_patron(cls, patron_id: str):
        return cls.run(patrons.get_patron, patron_id)

    @classmethod
    def add_book(cls, title: str, **fields):
        return cls.run(inventory.add_book, title, **fields)

    @classmethod
    def add_item(cls, book_id: int, barcode: str, location: str = '', condition: str = 'good'):
        return cls.run(inventory.add_item, book_id, barcode,
                       location=location, condition=condition)

    @classmethod
    def get_book(cls, book_id: int):
        return cls.run(inventory.get_book, book_id)

    @classmethod
    def get_available_items(cls, book_id: int):
        def _available(txn, book_id):
            inventory.get_book(txn, book_id)
            return inventory.get_available_items(txn, book_id)
        return cls.run(_available, book_id)

    @classmethod
    def recompute_counters(cls, book_id: Optional[int] = None) -> List[dict]:
        return cls.run(inventory.recompute_counters, book_id=book_id)

    # Loans

    @classmethod
    def checkout(cls, patron_id: str, item_id: int, book_id: int,
                 fulfills_reservation_id: Optional[int] = None,
                 issued_by: Optional[str] = None, now=None):
        return cls.run(loans.checkout, patron_id, item_id, book_id,
                       fulfills_reservation_id=fulfills_reservation_id,
                       issued_by=issued_by, now=now)

    @classmethod
    def return_loan(cls, loan_id: int, now=None):
        loan = cls.run(loans.return_loan, loan_id, now=now)
        cls._hand_on(loan.book_id, loan.item_id, now=now)
        return loan

    @classmethod
    def renew(cls, loan_id: int, now=None):
        return cls.run(loans.renew, loan_id, now=now)

    @classmethod
    def get_loan(cls, loan_id: int):
        return cls.run(loans.get_loan, loan_id)

    @classmethod
    def active_loans(cls, patron_id: str):
        return cls.run(loans.active_loans, patron_id)

    @classmethod
    def loan_history(cls, patron_id: str, limit: int = 100):
        return cls.run(loans.loan_history, patron_id, limit=limit)

    @classmethod
    def overdue_loans(cls, limit: int = 100, now=None):
        return cls.run(loans.overdue_loans, limit=limit, now=now)

    # Reservations

    @classmethod
    def reserve(cls, patron_id: str, book_id: int, now=None):
        return cls.run(reservations.reserve, patron_id, book_id, now=now)

    @classmethod
    def cancel_reservation(cls, reservation_id: int, patron_id: Optional[str] = None, now=None):
        reservation = cls.run(reservations.cancel, reservation_id, patron_id=patron_id, now=now)
        if reservation.item_id is not None:
            cls._hand_on(reservation.book_id, reservation.item_id, now=now)
        return reservation

    @classmethod
    def notify_next(cls, book_id: int, item_id: int, now=None):
        return cls.run(reservations.notify_next, book_id, item_id, now=now)

    @classmethod
    def reservations_for(cls, patron_id: str, active_only: bool = False):
        return cls.run(reservations.list_for_patron, patron_id, active_only=active_only)

    @classmethod
    def waiting_count(cls, book_id: int) -> int:
        return cls.run(reservations.waiting_count, book_id)

    @classmethod
    def book_queue(cls, book_id: int):
        def _queue(txn, book_id):
            inventory.get_book(txn, book_id)
            return reservations.queue(txn, book_id)
        return cls.run(_queue, book_id)

    @classmethod
    def _hand_on(cls, book_id, item_id, now=None):
        """Offers a freed copy to the reservation queue. The operation that
        freed it has already committed, so a failure here is logged and the
        copy stays on the shelf for the next return or sweep to pick up.
        """
        try:
            return cls.notify_next(book_id, item_id, now=now)
        except Exception as e:
            logger.error(f"Reservation fan-out for copy {item_id} of book {book_id} failed: {e}")
            return None

    # Borrow requests

    @classmethod
    def submit_request(cls, patron_id: str, book_id: int, item_id: Optional[int] = None,
                       member_note: Optional[str] = None, now=None):
        return cls.run(borrow_requests.submit, patron_id, book_id,
                       item_id=item_id, member_note=member_note, now=now)

    @classmethod
    def cancel_request(cls, request_id: int, patron_id: str, now=None):
        return cls.run(borrow_requests.cancel, request_id, patron_id, now=now)

    @classmethod
    def approve_request(cls, request_id: int, item_id: int, librarian_id: str,
                        note: Optional[str] = None, now=None):
        return cls.run(borrow_requests.approve, request_id, item_id, librarian_id,
                       note=note, now=now)

    @classmethod
    def reject_request(cls, request_id: int, librarian_id: str, reason: str, now=None):
        return cls.run(borrow_requests.reject, request_id, librarian_id, reason, now=now)

    @classmethod
    def requests_for(cls, patron_id: str):
        return cls.run(borrow_requests.list_for_patron, patron_id)

    @classmethod
    def all_requests(cls, status: Optional[str] = None):
        return cls.run(borrow_requests.list_all, status=status)

    # Notifications and batch jobs

    @classmethod
    def notifications_for(cls, patron_id: str, unread_only: bool = False):
        return cls.run(notifications.list_for_patron, patron_id, unread_only=unread_only)

    @classmethod
    def mark_notification_read(cls, notification_id: int, patron_id: str):
        return cls.run(notifications.mark_read, notification_id, patron_id)

    @classmethod
    def run_reconciliation(cls, now=None, batch_size: Optional[int] = None):
        return reconciler.run_reconciliation(
            now=now,
            batch_size=batch_size,
            session_factory=cls.session_factory,
            dispatchers=cls.dispatchers,
        )
