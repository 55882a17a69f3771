#!/usr/bin/env python

"""
    Circulation models for Libris,
    including books, their physical copies, patrons, loans,
    reservations, borrow requests and the notification outbox.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Float, JSON, DateTime, ForeignKey,
    Index, text, Enum as SQLAlchemyEnum
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy.ext.hybrid import hybrid_property
from libris.core.db import Base
from libris.core.exceptions import InvalidStateError
from libris.core.utils import as_utc, utcnow
from libris.configs import MAX_BORROW_MEMBER, MAX_BORROW_LIBRARIAN
import enum


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite has no timezone support, so values are stored as naive UTC there
    and made aware again when loaded.
    """
    impl = DateTime
    cache_ok = True

    def __init__(self):
        super().__init__(timezone=True)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = as_utc(value)
        if dialect.name == 'sqlite':
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)


class Role(enum.Enum):
    MEMBER = "member"
    LIBRARIAN = "librarian"

    @property
    def max_borrow(self):
        return MAX_BORROW_LIBRARIAN if self is Role.LIBRARIAN else MAX_BORROW_MEMBER


class ItemStatus(enum.Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"


class LoanStatus(enum.Enum):
    BORROWED = "borrowed"
    OVERDUE = "overdue"
    RETURNED = "returned"


class ReservationStatus(enum.Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    FULFILLED = "fulfilled"
    CANCELED = "canceled"


class BorrowRequestStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class NotificationKind(enum.Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    RESERVATION_READY = "reservation_ready"
    BORROW_APPROVED = "borrow_approved"
    BORROW_REJECTED = "borrow_rejected"


ACTIVE_LOAN_STATUSES = (LoanStatus.BORROWED, LoanStatus.OVERDUE)
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.WAITING, ReservationStatus.NOTIFIED)

# Allowed status moves; anything else is rejected by StatusMixin.transition
TRANSITIONS = {
    ItemStatus: {
        ItemStatus.AVAILABLE: {ItemStatus.BORROWED},
        ItemStatus.BORROWED: {ItemStatus.AVAILABLE},
    },
    LoanStatus: {
        LoanStatus.BORROWED: {LoanStatus.OVERDUE, LoanStatus.RETURNED},
        LoanStatus.OVERDUE: {LoanStatus.BORROWED, LoanStatus.RETURNED},
        LoanStatus.RETURNED: set(),
    },
    ReservationStatus: {
        ReservationStatus.WAITING: {ReservationStatus.NOTIFIED, ReservationStatus.CANCELED},
        ReservationStatus.NOTIFIED: {ReservationStatus.FULFILLED, ReservationStatus.CANCELED},
        ReservationStatus.FULFILLED: set(),
        ReservationStatus.CANCELED: set(),
    },
    BorrowRequestStatus: {
        BorrowRequestStatus.PENDING: {
            BorrowRequestStatus.APPROVED,
            BorrowRequestStatus.REJECTED,
            BorrowRequestStatus.CANCELLED,
        },
        BorrowRequestStatus.APPROVED: set(),
        BorrowRequestStatus.REJECTED: set(),
        BorrowRequestStatus.CANCELLED: set(),
    },
}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def status_column(enum_cls, **kwargs):
    return Column(
        SQLAlchemyEnum(enum_cls, values_callable=_enum_values, native_enum=False,
                       validate_strings=True),
        nullable=False, **kwargs)


class StatusMixin:

    def transition(self, target):
        allowed = TRANSITIONS[type(target)].get(self.status, set())
        if target not in allowed:
            raise InvalidStateError(
                f"{type(self).__name__} {self.key} cannot move from "
                f"'{self.status.value}' to '{target.value}'.",
                state=self.status.value,
            )
        self.status = target
        return self

    @property
    def key(self):
        return self.id


class Book(Base):
    __tablename__ = 'books'

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    isbn = Column(String(20))
    authors = Column(JSON, nullable=False, default=list)
    categories = Column(JSON, nullable=False, default=list)
    total_copies = Column(Integer, nullable=False, default=0)
    available_copies = Column(Integer, nullable=False, default=0)
    published_at = Column(UTCDateTime())
    cover_url = Column(String)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def is_borrowable(self):
        return self.available_copies > 0


class BookItem(StatusMixin, Base):
    __tablename__ = 'book_items'

    id = Column(Integer, primary_key=True)
    book_id = Column(Integer, ForeignKey('books.id', ondelete='CASCADE'), nullable=False, index=True)
    barcode = Column(String(64), unique=True, nullable=False)
    status = status_column(ItemStatus, default=ItemStatus.AVAILABLE)
    location = Column(String(100), nullable=False, default='')
    condition = Column(String(50), nullable=False, default='good')
    created_at = Column(UTCDateTime(), default=utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Patron(Base):
    __tablename__ = 'patrons'

    patron_id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(SQLAlchemyEnum(Role, values_callable=_enum_values, native_enum=False),
                  nullable=False, default=Role.MEMBER)
    borrowed_count = Column(Integer, nullable=False, default=0)
    max_borrow = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime(), default=utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def can_borrow(self):
        return self.borrowed_count < self.max_borrow


class Loan(StatusMixin, Base):
    __tablename__ = 'loans'

    id = Column(Integer, primary_key=True)
    patron_id = Column(String(50), ForeignKey('patrons.patron_id', ondelete='CASCADE'), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey('book_items.id'), nullable=False)
    book_id = Column(Integer, ForeignKey('books.id'), nullable=False)
    issue_date = Column(UTCDateTime(), nullable=False)
    due_date = Column(UTCDateTime(), nullable=False)
    return_date = Column(UTCDateTime())
    status = status_column(LoanStatus, default=LoanStatus.BORROWED)
    fine = Column(Float, nullable=False, default=0.0)
    renew_count = Column(Integer, nullable=False, default=0)
    days_overdue = Column(Integer, nullable=False, default=0)
    last_checked = Column(UTCDateTime())
    reminded_for_due = Column(UTCDateTime())
    issued_by = Column(String(50))
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index('ix_loans_status_due_date', 'status', 'due_date'),
    )

    @hybrid_property
    def is_active(self):
        return self.status in ACTIVE_LOAN_STATUSES

    @is_active.expression
    def is_active(cls):
        return cls.status.in_(ACTIVE_LOAN_STATUSES)


class Reservation(StatusMixin, Base):
    __tablename__ = 'reservations'

    id = Column(Integer, primary_key=True)
    patron_id = Column(String(50), ForeignKey('patrons.patron_id', ondelete='CASCADE'), nullable=False)
    book_id = Column(Integer, ForeignKey('books.id', ondelete='CASCADE'), nullable=False)
    item_id = Column(Integer, ForeignKey('book_items.id'))
    reserved_at = Column(UTCDateTime(), nullable=False)
    notified_at = Column(UTCDateTime())
    status = status_column(ReservationStatus, default=ReservationStatus.WAITING)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index('uq_reservations_active', 'patron_id', 'book_id', unique=True,
              sqlite_where=text("status IN ('waiting', 'notified')"),
              postgresql_where=text("status IN ('waiting', 'notified')")),
        Index('ix_reservations_queue', 'book_id', 'status', 'reserved_at'),
    )


class BorrowRequest(StatusMixin, Base):
    __tablename__ = 'borrow_requests'

    id = Column(Integer, primary_key=True)
    patron_id = Column(String(50), ForeignKey('patrons.patron_id', ondelete='CASCADE'), nullable=False)
    book_id = Column(Integer, ForeignKey('books.id', ondelete='CASCADE'), nullable=False)
    item_id = Column(Integer, ForeignKey('book_items.id'))
    requested_at = Column(UTCDateTime(), nullable=False)
    processed_at = Column(UTCDateTime())
    status = status_column(BorrowRequestStatus, default=BorrowRequestStatus.PENDING)
    member_note = Column(String)
    librarian_note = Column(String)
    processed_by = Column(String(50))
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index('uq_borrow_requests_pending', 'patron_id', 'book_id', unique=True,
              sqlite_where=text("status = 'pending'"),
              postgresql_where=text("status = 'pending'")),
    )


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    patron_id = Column(String(50), ForeignKey('patrons.patron_id', ondelete='CASCADE'), nullable=False, index=True)
    kind = Column(SQLAlchemyEnum(NotificationKind, values_callable=_enum_values, native_enum=False),
                  nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    is_read = Column(Boolean, default=False, nullable=False)
