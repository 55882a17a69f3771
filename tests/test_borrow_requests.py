#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_borrow_requests
    ~~~~~~~~~~~~~~~~~~~~~~~~~~

    Tests for the member borrow-request and librarian review workflow.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import datetime

import pytest
from libris.core.exceptions import (
    ConflictError,
    InvalidStateError,
    LimitExceededError,
)
from libris.core.models import (
    BorrowRequestStatus,
    LoanStatus,
    NotificationKind,
)

DAY = datetime.timedelta(days=1)


def test_submit(api, library, now):
    request = api.submit_request("alice", library.book.id, member_note="  for book club ", now=now)
    assert request.status is BorrowRequestStatus.PENDING
    assert request.requested_at == now
    assert request.member_note == "for book club"
    assert request.processed_at is None


def test_submit_blank_note_dropped(api, library, now):
    assert api.submit_request("alice", library.book.id, member_note="   ", now=now).member_note is None


def test_submit_twice(api, library, now):
    first = api.submit_request("alice", library.book.id, now=now)
    with pytest.raises(ConflictError) as exc:
        api.submit_request("alice", library.book.id, now=now)
    assert exc.value.details["request_id"] == first.id


def test_submit_while_holding_loan(api, library, now):
    api.checkout("alice", library.items[0].id, library.book.id, now=now)
    with pytest.raises(ConflictError):
        api.submit_request("alice", library.book.id, now=now)


def test_submit_at_cap(api, library, single_copy, now):
    for item in library.items:
        api.checkout("alice", item.id, library.book.id, now=now)
    with pytest.raises(LimitExceededError):
        api.submit_request("alice", single_copy.book.id, now=now)


def test_submit_for_unavailable_item(api, library, now):
    api.checkout("bob", library.items[0].id, library.book.id, now=now)
    with pytest.raises(InvalidStateError) as exc:
        api.submit_request("alice", library.book.id, item_id=library.items[0].id, now=now)
    assert exc.value.state == "borrowed"


def test_approve(api, library, now, check_invariants):
    request = api.submit_request("alice", library.book.id, now=now)
    approved = api.approve_request(request.id, library.items[1].id, "libby",
                                   note="enjoy", now=now + DAY)

    assert approved.status is BorrowRequestStatus.APPROVED
    assert approved.item_id == library.items[1].id
    assert approved.processed_by == "libby"
    assert approved.processed_at == now + DAY
    assert approved.librarian_note == "enjoy"

    loan, = api.active_loans("alice")
    assert loan.item_id == library.items[1].id
    assert loan.issued_by == "libby"
    assert loan.status is LoanStatus.BORROWED
    assert loan.due_date == now + 16 * DAY
    assert api.get_book(library.book.id).available_copies == 2
    assert api.get_patron("alice").borrowed_count == 1

    note, = api.notifications_for("alice")
    assert note.kind is NotificationKind.BORROW_APPROVED
    assert note.payload["loan_id"] == loan.id
    assert note.payload["request_id"] == request.id
    check_invariants()


def test_approve_with_borrowed_item_stays_pending(api, library, now, check_invariants):
    request = api.submit_request("alice", library.book.id, item_id=library.items[0].id, now=now)
    api.checkout("bob", library.items[0].id, library.book.id, now=now)

    with pytest.raises(InvalidStateError):
        api.approve_request(request.id, library.items[0].id, "libby", now=now)

    assert api.requests_for("alice")[0].status is BorrowRequestStatus.PENDING
    assert api.active_loans("alice") == []
    assert api.notifications_for("alice") == []
    check_invariants()

    approved = api.approve_request(request.id, library.items[2].id, "libby", now=now)
    assert approved.status is BorrowRequestStatus.APPROVED


def test_approve_past_cap_stays_pending(api, library, single_copy, now, check_invariants):
    request = api.submit_request("alice", single_copy.book.id, now=now)
    for item in library.items:
        api.checkout("alice", item.id, library.book.id, now=now)

    with pytest.raises(LimitExceededError):
        api.approve_request(request.id, single_copy.item.id, "libby", now=now)
    assert api.requests_for("alice")[0].status is BorrowRequestStatus.PENDING
    check_invariants()


def test_reject(api, library, now, check_invariants):
    request = api.submit_request("alice", library.book.id, now=now)
    rejected = api.reject_request(request.id, "libby", "Reference copy only", now=now + DAY)

    assert rejected.status is BorrowRequestStatus.REJECTED
    assert rejected.librarian_note == "Reference copy only"
    assert rejected.processed_by == "libby"
    assert api.get_book(library.book.id).available_copies == 3

    note, = api.notifications_for("alice")
    assert note.kind is NotificationKind.BORROW_REJECTED
    assert note.payload["reason"] == "Reference copy only"
    check_invariants()


@pytest.mark.parametrize("finish", ["approve", "reject", "cancel"])
def test_terminal_requests_are_final(api, library, now, finish):
    request = api.submit_request("alice", library.book.id, now=now)
    if finish == "approve":
        api.approve_request(request.id, library.items[0].id, "libby", now=now)
    elif finish == "reject":
        api.reject_request(request.id, "libby", "no", now=now)
    else:
        api.cancel_request(request.id, "alice", now=now)

    with pytest.raises(InvalidStateError):
        api.approve_request(request.id, library.items[1].id, "libby", now=now)
    with pytest.raises(InvalidStateError):
        api.reject_request(request.id, "libby", "again", now=now)
    with pytest.raises(InvalidStateError):
        api.cancel_request(request.id, "alice", now=now)


def test_cancel_by_other_patron(api, library, now):
    request = api.submit_request("alice", library.book.id, now=now)
    with pytest.raises(InvalidStateError):
        api.cancel_request(request.id, "bob", now=now)
    assert api.requests_for("alice")[0].status is BorrowRequestStatus.PENDING


def test_cancel_then_submit_again(api, library, now):
    first = api.submit_request("alice", library.book.id, now=now)
    cancelled = api.cancel_request(first.id, "alice", now=now + DAY)
    assert cancelled.status is BorrowRequestStatus.CANCELLED
    assert cancelled.processed_at == now + DAY

    second = api.submit_request("alice", library.book.id, now=now + DAY)
    assert second.status is BorrowRequestStatus.PENDING


def test_list_all_by_status(api, library, single_copy, now):
    kept = api.submit_request("alice", library.book.id, now=now)
    dropped = api.submit_request("bob", single_copy.book.id, now=now + DAY)
    api.reject_request(dropped.id, "libby", "no", now=now + DAY)

    assert [r.id for r in api.all_requests()] == [dropped.id, kept.id]
    assert [r.id for r in api.all_requests(status="pending")] == [kept.id]
    assert [r.id for r in api.all_requests(status=BorrowRequestStatus.REJECTED)] == [dropped.id]
