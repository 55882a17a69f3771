#!/usr/bin/env python

"""
    Overdue/fine reconciler for Libris.

    Run once a day by the scheduler (see scripts/reconcile.py) or on demand
    by a librarian. Loans are paged in id order and each one is aged in its
    own transaction, so a failing loan is recorded and skipped without
    holding up the rest. Fines are recomputed from `now` and the due date,
    so an interrupted run can simply be started again.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
from typing import Callable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from libris.configs import DUE_SOON_DAYS, RECONCILIATION_BATCH_SIZE
from libris.core import reservations
from libris.core.exceptions import LibrisAPIError, ReconciliationError
from libris.core.loans import compute_fine
from libris.core.models import (
    ACTIVE_LOAN_STATUSES,
    Book,
    Loan,
    LoanStatus,
    NotificationKind,
)
from libris.core.transactions import run_transaction
from libris.core.utils import as_utc, utcnow
from libris.schemas.reconciliation import LoanFailure, ReconciliationReport

logger = logging.getLogger(__name__)

MARKED_OVERDUE = "marked_overdue"
FINE_UPDATED = "fine_updated"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
REMINDED = "reminded"


def overdue_batch(txn, after_id, limit) -> List[int]:
    rows = txn.query(Loan.id).filter(
        Loan.status.in_(ACTIVE_LOAN_STATUSES),
        Loan.due_date < txn.now,
        Loan.id > after_id,
    ).order_by(Loan.id).limit(limit).all()
    return [row.id for row in rows]


def due_soon_batch(txn, after_id, limit) -> List[int]:
    horizon = txn.now + datetime.timedelta(days=DUE_SOON_DAYS)
    rows = txn.query(Loan.id).filter(
        Loan.status == LoanStatus.BORROWED,
        Loan.due_date >= txn.now,
        Loan.due_date <= horizon,
        Loan.id > after_id,
    ).order_by(Loan.id).limit(limit).all()
    return [row.id for row in rows]


def _title(txn, book_id):
    book = txn.find(Book, book_id)
    return book.title if book else None


def age_loan(txn, loan_id) -> str:
    """Marks one loan overdue and recomputes its fine as of `txn.now`.

    An overdue event is emitted only when the loan first goes overdue or
    its day count moves, so re-running with the same `now` is silent.
    """
    loan = txn.get(Loan, loan_id, label="Loan")
    if loan.status not in ACTIVE_LOAN_STATUSES or loan.due_date >= txn.now:
        return SKIPPED

    days, fine = compute_fine(loan.due_date, txn.now)
    newly_overdue = loan.status is LoanStatus.BORROWED
    changed = newly_overdue or days != loan.days_overdue

    if newly_overdue:
        loan.transition(LoanStatus.OVERDUE)
    loan.days_overdue = days
    loan.fine = fine
    loan.last_checked = txn.now

    if not changed:
        return UNCHANGED
    txn.emit(
        loan.patron_id,
        NotificationKind.OVERDUE,
        loan_id=loan.id,
        book_id=loan.book_id,
        title=_title(txn, loan.book_id),
        days_overdue=days,
        fine=fine,
    )
    return MARKED_OVERDUE if newly_overdue else FINE_UPDATED


def remind_due_soon(txn, loan_id) -> str:
    """One reminder per due date; a renewal moves the due date and so
    allows another.
    """
    loan = txn.get(Loan, loan_id, label="Loan")
    if loan.status is not LoanStatus.BORROWED or loan.reminded_for_due == loan.due_date:
        return SKIPPED
    loan.reminded_for_due = loan.due_date
    txn.emit(
        loan.patron_id,
        NotificationKind.DUE_SOON,
        loan_id=loan.id,
        book_id=loan.book_id,
        title=_title(txn, loan.book_id),
        due_date=loan.due_date.isoformat(),
    )
    return REMINDED


def _walk(select: Callable, process: Callable, report: ReconciliationReport,
          now, batch_size, session_factory, dispatchers, tally: Callable):
    last_id = 0
    while True:
        try:
            batch = run_transaction(
                select, last_id, batch_size, session_factory=session_factory, now=now)
        except (LibrisAPIError, SQLAlchemyError) as e:
            logger.error(f"[reconcile] could not read loans after id {last_id}: {e}")
            raise ReconciliationError(
                f"Reading loans for reconciliation failed: {e}", after_id=last_id) from e
        if not batch:
            return
        for loan_id in batch:
            report.scanned += 1
            try:
                outcome = run_transaction(
                    process, loan_id, session_factory=session_factory, now=now,
                    dispatchers=dispatchers)
            except Exception as e:
                report.failed += 1
                report.failures.append(LoanFailure(loan_id=loan_id, error=str(e)))
                logger.exception(f"[reconcile] loan {loan_id} failed: {e}")
                continue
            tally(outcome)
        last_id = batch[-1]


def run_reconciliation(now=None, batch_size: Optional[int] = None,
                       session_factory=None, dispatchers=None) -> ReconciliationReport:
    """Ages overdue loans, sends due-soon reminders and expires unclaimed
    reservation holds. Only a failure to read the loan set aborts the run.
    """
    now = as_utc(now) if now else utcnow()
    batch_size = batch_size or RECONCILIATION_BATCH_SIZE
    report = ReconciliationReport(now=now)
    logger.info(f"[reconcile] starting run for {now.isoformat()} in batches of {batch_size}")

    def tally_overdue(outcome):
        if outcome == MARKED_OVERDUE:
            report.marked_overdue += 1
        elif outcome == FINE_UPDATED:
            report.fines_updated += 1
        elif outcome == UNCHANGED:
            report.unchanged += 1
        else:
            report.skipped += 1

    def tally_reminder(outcome):
        if outcome == REMINDED:
            report.reminders_sent += 1

    _walk(overdue_batch, age_loan, report, now, batch_size,
          session_factory, dispatchers, tally_overdue)
    _walk(due_soon_batch, remind_due_soon, report, now, batch_size,
          session_factory, dispatchers, tally_reminder)

    try:
        expired = run_transaction(
            reservations.expire_notified, session_factory=session_factory, now=now,
            dispatchers=dispatchers)
        report.reservations_expired = len(expired)
    except Exception as e:
        report.sweep_error = str(e)
        logger.exception(f"[reconcile] reservation expiry sweep failed: {e}")

    report.finished_at = utcnow()
    logger.info(
        f"[reconcile] done: scanned={report.scanned} overdue={report.marked_overdue} "
        f"updated={report.fines_updated} failed={report.failed} "
        f"reminders={report.reminders_sent} expired={report.reservations_expired}")
    return report
