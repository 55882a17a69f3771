#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.conftest
    ~~~~~~~~~~~~~~

    Shared fixtures: a fresh SQLite database per test, the LibrisAPI facade
    bound to it, and a small seeded library.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import os

# Set TESTING before any libris imports
os.environ["TESTING"] = "true"

import datetime
from types import SimpleNamespace

import pytest
from libris.core.api import LibrisAPI
from libris.core.db import Base, make_engine, make_session_factory
from libris.core.models import (
    ACTIVE_LOAN_STATUSES,
    Book,
    BookItem,
    ItemStatus,
    Loan,
    Patron,
    Role,
)
from libris.core.transactions import Transaction


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'libris.db'}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def api(session_factory, monkeypatch):
    monkeypatch.setattr(LibrisAPI, "session_factory", session_factory)
    monkeypatch.setattr(LibrisAPI, "dispatchers", [])
    return LibrisAPI


@pytest.fixture
def now():
    return datetime.datetime(2025, 3, 1, 9, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def txn(session_factory, now):
    """A bare Transaction for exercising module functions directly."""
    session = session_factory()
    try:
        yield Transaction(session, now=now)
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def library(api):
    alice = api.register_patron("alice", "Alice", "alice@example.org")
    bob = api.register_patron("bob", "Bob", "bob@example.org")
    carol = api.register_patron("carol", "Carol", "carol@example.org")
    librarian = api.register_patron("libby", "Libby", "libby@example.org", role=Role.LIBRARIAN)
    book = api.add_book(
        "The Dispossessed", isbn="9780061054884",
        authors=["Ursula K. Le Guin"], categories=["fiction"])
    items = [api.add_item(book.id, f"DSP-{n:03d}", location="A-12") for n in (1, 2, 3)]
    return SimpleNamespace(
        alice=alice, bob=bob, carol=carol, librarian=librarian,
        book=book, items=items)


@pytest.fixture
def single_copy(api):
    """A second title with exactly one copy."""
    book = api.add_book("Always Coming Home", authors=["Ursula K. Le Guin"])
    item = api.add_item(book.id, "ACH-001", location="B-3")
    return SimpleNamespace(book=book, item=item)


@pytest.fixture
def check_invariants(session_factory):
    """Asserts the cached counters agree with the records behind them."""
    def check():
        db = session_factory()
        try:
            for book in db.query(Book):
                available = db.query(BookItem).filter_by(
                    book_id=book.id, status=ItemStatus.AVAILABLE).count()
                assert book.available_copies == available, book.title
                assert book.total_copies == db.query(BookItem).filter_by(book_id=book.id).count()
            for patron in db.query(Patron):
                active = db.query(Loan).filter(
                    Loan.patron_id == patron.patron_id,
                    Loan.status.in_(ACTIVE_LOAN_STATUSES)).count()
                assert patron.borrowed_count == active, patron.patron_id
            for item in db.query(BookItem).filter_by(status=ItemStatus.BORROWED):
                holders = db.query(Loan).filter(
                    Loan.item_id == item.id,
                    Loan.status.in_(ACTIVE_LOAN_STATUSES)).count()
                assert holders == 1, item.barcode
        finally:
            db.close()
    return check
