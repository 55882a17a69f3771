#!/usr/bin/env python

"""
    Notification outbox for Libris.

    Circulation transitions write `Notification` rows inside the same
    transaction that caused them. Once that transaction commits the rows
    are handed to every registered `NotificationDispatcher`; delivery
    itself (push, email) belongs to the dispatcher.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from typing import Iterable, List, Optional
from libris.core.exceptions import NotFoundError
from libris.core.models import Notification

logger = logging.getLogger(__name__)


class NotificationDispatcher:

    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingDispatcher(NotificationDispatcher):

    def send(self, notification):
        logger.info(
            f"[notify] {notification.kind.value} -> {notification.patron_id}: "
            f"{notification.payload}")


DISPATCHERS: List[NotificationDispatcher] = [LoggingDispatcher()]


def register(dispatcher: NotificationDispatcher):
    DISPATCHERS.append(dispatcher)
    return dispatcher


def unregister(dispatcher: NotificationDispatcher):
    if dispatcher in DISPATCHERS:
        DISPATCHERS.remove(dispatcher)


def dispatch(notifications: Iterable[Notification],
             dispatchers: Optional[Iterable[NotificationDispatcher]] = None) -> int:
    """Hands committed notifications to the dispatchers and returns how many
    deliveries succeeded. A failing dispatcher is logged and skipped; the
    rows stay in the outbox either way.
    """
    dispatchers = DISPATCHERS if dispatchers is None else list(dispatchers)
    delivered = 0
    for notification in notifications:
        for dispatcher in dispatchers:
            try:
                dispatcher.send(notification)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Dispatcher {type(dispatcher).__name__} failed for "
                    f"notification {notification.id}: {e}")
    return delivered


def list_for_patron(txn, patron_id, unread_only=False, limit=100):
    q = txn.query(Notification).filter(Notification.patron_id == patron_id)
    if unread_only:
        q = q.filter(Notification.is_read == False)  # noqa: E712
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(txn, notification_id, patron_id):
    notification = txn.session.get(Notification, notification_id)
    if notification is None or notification.patron_id != patron_id:
        raise NotFoundError(f"Notification {notification_id} not found.")
    notification.is_read = True
    return notification
