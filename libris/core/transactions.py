#!/usr/bin/env python

"""
    Transaction coordinator for Libris.

    Every circulation operation is a function `work(txn, ...)` that reads
    the records it touches through a `Transaction`, validates them and
    stages its writes. `run_transaction` commits those writes together or
    not at all. Rows carry a version column, so a write against a row that
    changed since it was read fails at commit; the whole unit is then
    rolled back and replayed against fresh state, up to `TXN_MAX_RETRIES`
    times.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
import time
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from libris.configs import TXN_MAX_RETRIES, TXN_RETRY_BACKOFF
from libris.core import notifications
from libris.core.db import SessionLocal
from libris.core.exceptions import (
    ConflictError,
    NotFoundError,
    RetryExhaustedError,
    TransientStoreConflict,
)
from libris.core.models import Notification
from libris.core.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Lost optimistic version checks, lock/serialization failures and
# partial-unique-index races all resolve by replaying against fresh state.
RETRYABLE_ERRORS = (StaleDataError, OperationalError, IntegrityError)


class Transaction:
    """One attempt of one atomic unit: a session, a fixed clock reading
    and the notifications staged alongside the writes.
    """

    def __init__(self, session, now=None):
        self.session = session
        self.now = as_utc(now) if now else utcnow()
        self.notifications = []

    def get(self, model, key, label=None):
        record = self.session.get(model, key) if key is not None else None
        if record is None:
            label = label or model.__name__
            raise NotFoundError(f"{label} {key} not found.", resource=label, id=key)
        return record

    def find(self, model, key):
        return self.session.get(model, key) if key is not None else None

    def query(self, *entities):
        return self.session.query(*entities)

    def add(self, record):
        self.session.add(record)
        return record

    def flush(self):
        self.session.flush()

    def emit(self, patron_id, kind, **payload):
        notification = Notification(
            patron_id=patron_id, kind=kind, payload=payload, created_at=self.now)
        self.session.add(notification)
        self.notifications.append(notification)
        return notification


def run_transaction(work, *args, session_factory=None, now=None,
                    max_retries=None, dispatchers=None, **kwargs):
    """Runs `work(txn, *args, **kwargs)` atomically and returns its result.

    Domain errors raised by `work` roll the attempt back and propagate
    unchanged. Concurrent-write conflicts are retried; once retries run out
    a `RetryExhaustedError` is raised. An `IntegrityError` is replayed only
    once; if fresh state violates a constraint again it is a
    `ConflictError`.
    """
    factory = session_factory or SessionLocal
    attempts = max(1, TXN_MAX_RETRIES if max_retries is None else max_retries)
    name = getattr(work, '__name__', repr(work))
    conflict = None
    integrity_failures = 0

    for attempt in range(1, attempts + 1):
        db = factory()
        txn = Transaction(db, now=now)
        try:
            result = work(txn, *args, **kwargs)
            db.commit()
        except RETRYABLE_ERRORS as e:
            db.rollback()
            if isinstance(e, IntegrityError):
                integrity_failures += 1
                if integrity_failures > 1:
                    # a second violation on fresh state is not a race
                    raise ConflictError(
                        f"{name} conflicts with an existing record.") from e
            conflict = TransientStoreConflict(
                f"Concurrent write detected during {name}: {e.__class__.__name__}")
            logger.warning(
                f"[txn] {name} attempt {attempt}/{attempts} conflicted: {e.__class__.__name__}")
            if attempt < attempts:
                time.sleep(TXN_RETRY_BACKOFF * attempt)
            continue
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if txn.notifications:
            notifications.dispatch(txn.notifications, dispatchers)
        return result

    raise RetryExhaustedError(
        f"{name} could not be applied after {attempts} attempts; please retry.",
        attempts=attempts,
    ) from conflict
