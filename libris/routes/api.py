#!/usr/bin/env python

"""
    API routes for Libris,
    covering catalog maintenance, loans, reservations, borrow requests,
    notifications and the reconciliation job.

    Identity is supplied by the upstream identity provider through the
    `X-Patron-Id` and `X-Patron-Role` headers and trusted as given.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from functools import wraps
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel
from libris.core.api import LibrisAPI
from libris.core.exceptions import (
    ConflictError,
    InvalidStateError,
    LibrisAPIError,
    LimitExceededError,
    NotFoundError,
    PermissionDeniedError,
    ReconciliationError,
    RetryExhaustedError,
)
from libris.core.models import BorrowRequestStatus, Role
from libris.routes.schemas import (
    ApproveRequest,
    BookCreate,
    BorrowRequestCreate,
    CheckoutRequest,
    ItemCreate,
    PatronRegistration,
    ReconciliationRun,
    RejectRequest,
    ReservationCreate,
)
from libris.schemas.book import Book, BookItem
from libris.schemas.borrow_request import BorrowRequest
from libris.schemas.loan import Loan
from libris.schemas.notification import Notification
from libris.schemas.patron import Patron
from libris.schemas.reconciliation import ReconciliationReport
from libris.schemas.reservation import Reservation

router = APIRouter()

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    LimitExceededError: status.HTTP_403_FORBIDDEN,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    RetryExhaustedError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ReconciliationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class Identity(BaseModel):
    patron_id: str
    role: Role

    @property
    def is_librarian(self):
        return self.role is Role.LIBRARIAN


def identity(x_patron_id: str = Header(...),
             x_patron_role: Role = Header(Role.MEMBER)) -> Identity:
    return Identity(patron_id=x_patron_id, role=x_patron_role)


def requires_librarian(who: Identity):
    if not who.is_librarian:
        raise PermissionDeniedError("Librarian role required.")


def requires_owner(who: Identity, patron_id: str):
    if not who.is_librarian and who.patron_id != patron_id:
        raise PermissionDeniedError("You can only act on your own records.")


def handles_circulation_errors(func):
    """
    Decorator translating circulation errors raised by the wrapped route
    into HTTP errors whose detail carries the error code and context
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LibrisAPIError as e:
            code = next(
                (ERROR_STATUS[cls] for cls in type(e).__mro__ if cls in ERROR_STATUS),
                status.HTTP_400_BAD_REQUEST)
            raise HTTPException(status_code=code, detail=e.to_dict())
    return wrapper


@router.post('/patrons', status_code=status.HTTP_201_CREATED, response_model=Patron)
@handles_circulation_errors
def register_patron(body: PatronRegistration, who: Identity = Depends(identity)):
    patron = LibrisAPI.register_patron(who.patron_id, body.name, body.email, role=who.role)
    return Patron.model_validate(patron)


@router.get('/patrons/me', response_model=Patron)
@handles_circulation_errors
def get_me(who: Identity = Depends(identity)):
    return Patron.model_validate(LibrisAPI.get_patron(who.patron_id))


@router.post('/books', status_code=status.HTTP_201_CREATED, response_model=Book)
@handles_circulation_errors
def add_book(body: BookCreate, who: Identity = Depends(identity)):
    requires_librarian(who)
    return Book.model_validate(LibrisAPI.add_book(**body.model_dump()))


@router.get('/books/{book_id}', response_model=Book)
@handles_circulation_errors
def get_book(book_id: int):
    book = Book.model_validate(LibrisAPI.get_book(book_id))
    book.waiting_count = LibrisAPI.waiting_count(book_id)
    return book


@router.post('/books/{book_id}/items', status_code=status.HTTP_201_CREATED, response_model=BookItem)
@handles_circulation_errors
def add_item(book_id: int, body: ItemCreate, who: Identity = Depends(identity)):
    requires_librarian(who)
    item = LibrisAPI.add_item(book_id, body.barcode, location=body.location, condition=body.condition)
    return BookItem.model_validate(item)


@router.get('/books/{book_id}/items/available', response_model=List[BookItem])
@handles_circulation_errors
def available_items(book_id: int):
    return [BookItem.model_validate(i) for i in LibrisAPI.get_available_items(book_id)]


@router.get('/books/{book_id}/reservations', response_model=List[Reservation])
@handles_circulation_errors
def book_queue(book_id: int, who: Identity = Depends(identity)):
    requires_librarian(who)
    return [Reservation.model_validate(r) for r in LibrisAPI.book_queue(book_id)]


@router.post('/loans', status_code=status.HTTP_201_CREATED, response_model=Loan)
@handles_circulation_errors
def checkout(body: CheckoutRequest, who: Identity = Depends(identity)):
    patron_id = body.patron_id or who.patron_id
    requires_owner(who, patron_id)
    loan = LibrisAPI.checkout(
        patron_id, body.item_id, body.book_id,
        fulfills_reservation_id=body.fulfills_reservation_id,
        issued_by=who.patron_id if who.is_librarian else None,
    )
    return Loan.model_validate(loan)


@router.get('/loans', response_model=List[Loan])
@handles_circulation_errors
def list_loans(history: bool = False, who: Identity = Depends(identity)):
    found = (LibrisAPI.loan_history(who.patron_id) if history
             else LibrisAPI.active_loans(who.patron_id))
    return [Loan.model_validate(loan) for loan in found]


@router.get('/loans/overdue', response_model=List[Loan])
@handles_circulation_errors
def overdue_loans(limit: int = 100, who: Identity = Depends(identity)):
    requires_librarian(who)
    return [Loan.model_validate(loan) for loan in LibrisAPI.overdue_loans(limit=limit)]


@router.post('/loans/{loan_id}/return', response_model=Loan)
@handles_circulation_errors
def return_loan(loan_id: int, who: Identity = Depends(identity)):
    requires_owner(who, LibrisAPI.get_loan(loan_id).patron_id)
    return Loan.model_validate(LibrisAPI.return_loan(loan_id))


@router.post('/loans/{loan_id}/renew', response_model=Loan)
@handles_circulation_errors
def renew_loan(loan_id: int, who: Identity = Depends(identity)):
    requires_owner(who, LibrisAPI.get_loan(loan_id).patron_id)
    return Loan.model_validate(LibrisAPI.renew(loan_id))


@router.post('/reservations', status_code=status.HTTP_201_CREATED, response_model=Reservation)
@handles_circulation_errors
def reserve(body: ReservationCreate, who: Identity = Depends(identity)):
    return Reservation.model_validate(LibrisAPI.reserve(who.patron_id, body.book_id))


@router.get('/reservations', response_model=List[Reservation])
@handles_circulation_errors
def list_reservations(active: bool = False, who: Identity = Depends(identity)):
    found = LibrisAPI.reservations_for(who.patron_id, active_only=active)
    return [Reservation.model_validate(r) for r in found]


@router.post('/reservations/{reservation_id}/cancel', response_model=Reservation)
@handles_circulation_errors
def cancel_reservation(reservation_id: int, who: Identity = Depends(identity)):
    owner = None if who.is_librarian else who.patron_id
    return Reservation.model_validate(LibrisAPI.cancel_reservation(reservation_id, patron_id=owner))


@router.post('/requests', status_code=status.HTTP_201_CREATED, response_model=BorrowRequest)
@handles_circulation_errors
def submit_request(body: BorrowRequestCreate, who: Identity = Depends(identity)):
    request = LibrisAPI.submit_request(
        who.patron_id, body.book_id, item_id=body.item_id, member_note=body.member_note)
    return BorrowRequest.model_validate(request)


@router.get('/requests', response_model=List[BorrowRequest])
@handles_circulation_errors
def list_requests(status: Optional[BorrowRequestStatus] = None, who: Identity = Depends(identity)):
    found = (LibrisAPI.all_requests(status=status) if who.is_librarian
             else LibrisAPI.requests_for(who.patron_id))
    return [BorrowRequest.model_validate(r) for r in found]


@router.post('/requests/{request_id}/cancel', response_model=BorrowRequest)
@handles_circulation_errors
def cancel_request(request_id: int, who: Identity = Depends(identity)):
    return BorrowRequest.model_validate(LibrisAPI.cancel_request(request_id, who.patron_id))


@router.post('/requests/{request_id}/approve', response_model=BorrowRequest)
@handles_circulation_errors
def approve_request(request_id: int, body: ApproveRequest, who: Identity = Depends(identity)):
    requires_librarian(who)
    request = LibrisAPI.approve_request(request_id, body.item_id, who.patron_id, note=body.note)
    return BorrowRequest.model_validate(request)


@router.post('/requests/{request_id}/reject', response_model=BorrowRequest)
@handles_circulation_errors
def reject_request(request_id: int, body: RejectRequest, who: Identity = Depends(identity)):
    requires_librarian(who)
    request = LibrisAPI.reject_request(request_id, who.patron_id, body.reason)
    return BorrowRequest.model_validate(request)


@router.get('/notifications', response_model=List[Notification])
@handles_circulation_errors
def list_notifications(unread: bool = False, who: Identity = Depends(identity)):
    found = LibrisAPI.notifications_for(who.patron_id, unread_only=unread)
    return [Notification.model_validate(n) for n in found]


@router.post('/notifications/{notification_id}/read', response_model=Notification)
@handles_circulation_errors
def read_notification(notification_id: int, who: Identity = Depends(identity)):
    return Notification.model_validate(
        LibrisAPI.mark_notification_read(notification_id, who.patron_id))


@router.post('/reconciliation', response_model=ReconciliationReport)
@handles_circulation_errors
def run_reconciliation(body: Optional[ReconciliationRun] = None, who: Identity = Depends(identity)):
    requires_librarian(who)
    body = body or ReconciliationRun()
    return LibrisAPI.run_reconciliation(now=body.now, batch_size=body.batch_size)


@router.post('/maintenance/recompute-counters')
@handles_circulation_errors
def recompute_counters(book_id: Optional[int] = None, who: Identity = Depends(identity)):
    requires_librarian(who)
    corrections = LibrisAPI.recompute_counters(book_id=book_id)
    return {"corrections": corrections, "count": len(corrections)}
