#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_reconciler
    ~~~~~~~~~~~~~~~~~~~~~

    Tests for the overdue/fine reconciliation job.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError
from libris.core import reconciler
from libris.core.exceptions import ReconciliationError
from libris.core.models import LoanStatus, NotificationKind, ReservationStatus

DAY = datetime.timedelta(days=1)


def overdue_notes(api, patron_id):
    return [n for n in api.notifications_for(patron_id) if n.kind is NotificationKind.OVERDUE]


def test_marks_overdue_with_fine(api, library, now):
    loan = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    run_at = loan.due_date + 3 * DAY

    report = api.run_reconciliation(now=run_at)

    aged = api.get_loan(loan.id)
    assert aged.status is LoanStatus.OVERDUE
    assert aged.days_overdue == 3
    assert aged.fine == 3.0
    assert aged.last_checked == run_at
    assert report.scanned == 1
    assert report.marked_overdue == 1
    assert report.failed == 0

    note, = overdue_notes(api, "alice")
    assert note.payload == {
        "loan_id": loan.id,
        "book_id": library.book.id,
        "title": "The Dispossessed",
        "days_overdue": 3,
        "fine": 3.0,
    }


def test_same_run_twice_is_idempotent(api, library, now):
    loan = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    run_at = loan.due_date + 3 * DAY

    api.run_reconciliation(now=run_at)
    report = api.run_reconciliation(now=run_at)

    assert api.get_loan(loan.id).fine == 3.0
    assert report.marked_overdue == 0
    assert report.fines_updated == 0
    assert report.unchanged == 1
    assert len(overdue_notes(api, "alice")) == 1


def test_next_day_updates_fine(api, library, now):
    loan = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    api.run_reconciliation(now=loan.due_date + 3 * DAY)
    report = api.run_reconciliation(now=loan.due_date + 4 * DAY)

    aged = api.get_loan(loan.id)
    assert aged.days_overdue == 4
    assert aged.fine == 4.0
    assert report.fines_updated == 1
    assert len(overdue_notes(api, "alice")) == 2


def test_fine_at_return_matches_reconciled_fine(api, library, now):
    loan = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    run_at = loan.due_date + 2 * DAY + datetime.timedelta(hours=5)
    api.run_reconciliation(now=run_at)

    returned = api.return_loan(loan.id, now=run_at)
    assert returned.fine == api.get_loan(loan.id).fine == 3.0


def test_loans_not_yet_due_and_returned_loans_untouched(api, library, now):
    current = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    closed = api.checkout("bob", library.items[1].id, library.book.id, now=now)
    api.return_loan(closed.id, now=now + DAY)

    report = api.run_reconciliation(now=now + 10 * DAY)

    assert report.scanned == 0
    assert api.get_loan(current.id).status is LoanStatus.BORROWED
    assert api.get_loan(closed.id).status is LoanStatus.RETURNED


def test_pages_through_batches(api, library, single_copy, now):
    loans = [api.checkout(patron, item.id, library.book.id, now=now)
             for patron, item in zip(["alice", "bob", "carol"], library.items)]
    loans.append(api.checkout("libby", single_copy.item.id, single_copy.book.id, now=now))

    report = api.run_reconciliation(now=now + 20 * DAY, batch_size=1)

    assert report.scanned == 4
    assert report.marked_overdue == 4
    assert all(api.get_loan(loan.id).fine == 5.0 for loan in loans)


def test_failing_loan_does_not_stop_run(api, library, now, monkeypatch):
    broken = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    fine = api.checkout("bob", library.items[1].id, library.book.id, now=now)
    age_loan = reconciler.age_loan

    def flaky(txn, loan_id):
        if loan_id == broken.id:
            raise RuntimeError("disk on fire")
        return age_loan(txn, loan_id)

    monkeypatch.setattr(reconciler, "age_loan", flaky)
    report = api.run_reconciliation(now=now + 20 * DAY)

    assert report.failed == 1
    assert report.failures[0].loan_id == broken.id
    assert "disk on fire" in report.failures[0].error
    assert report.marked_overdue == 1
    assert api.get_loan(fine.id).status is LoanStatus.OVERDUE
    assert api.get_loan(broken.id).status is LoanStatus.BORROWED


def test_unreadable_loan_set_aborts(api, library, now, monkeypatch):
    api.checkout("alice", library.items[0].id, library.book.id, now=now)

    def unreadable(txn, after_id, limit):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(reconciler, "overdue_batch", unreadable)
    with pytest.raises(ReconciliationError) as exc:
        api.run_reconciliation(now=now + 20 * DAY)
    assert exc.value.details["after_id"] == 0


def test_due_soon_reminder_sent_once(api, library, now):
    loan = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    run_at = loan.due_date - DAY

    assert api.run_reconciliation(now=run_at).reminders_sent == 1
    assert api.run_reconciliation(now=run_at + datetime.timedelta(hours=6)).reminders_sent == 0

    reminder, = [n for n in api.notifications_for("alice") if n.kind is NotificationKind.DUE_SOON]
    assert reminder.payload["due_date"] == loan.due_date.isoformat()

    renewed = api.renew(loan.id, now=run_at)
    assert api.run_reconciliation(now=renewed.due_date - DAY).reminders_sent == 1


def test_expires_unclaimed_holds(api, library, single_copy, now):
    loan = api.checkout("carol", single_copy.item.id, single_copy.book.id, now=now)
    api.reserve("alice", single_copy.book.id, now=now)
    api.reserve("bob", single_copy.book.id, now=now + DAY)
    api.return_loan(loan.id, now=now + 2 * DAY)

    report = api.run_reconciliation(now=now + 6 * DAY)

    assert report.reservations_expired == 1
    assert report.sweep_error is None
    assert api.reservations_for("alice")[0].status is ReservationStatus.CANCELED
    assert api.reservations_for("bob")[0].status is ReservationStatus.NOTIFIED


def test_dispatches_after_commit(api, library, now, monkeypatch):
    sent = []

    class Collector:
        def send(self, notification):
            sent.append((notification.kind, notification.patron_id))

    monkeypatch.setattr(api, "dispatchers", [Collector()])
    loan = api.checkout("alice", library.items[0].id, library.book.id, now=now)
    api.run_reconciliation(now=loan.due_date + DAY)

    assert sent == [(NotificationKind.OVERDUE, "alice")]
