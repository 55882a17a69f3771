#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_inventory
    ~~~~~~~~~~~~~~~~~~~~

    Tests for books, their copies and the cached copy counters.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import pytest
from libris.core import inventory
from libris.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from libris.core.models import Book, ItemStatus, Patron


def test_add_item_counts_copy(library):
    """Each registered copy is available and counted on its book."""
    assert library.book.total_copies == 3
    assert library.book.available_copies == 3
    assert all(item.status is ItemStatus.AVAILABLE for item in library.items)


def test_add_item_rejects_duplicate_barcode(api, library, check_invariants):
    with pytest.raises(ConflictError) as exc:
        api.add_item(library.book.id, "DSP-001")
    assert exc.value.details["barcode"] == "DSP-001"
    assert api.get_book(library.book.id).total_copies == 3
    check_invariants()


def test_add_item_to_missing_book(api):
    with pytest.raises(NotFoundError):
        api.add_item(999, "NOPE-1")


def test_get_book_missing(api):
    with pytest.raises(NotFoundError) as exc:
        api.get_book(42)
    assert exc.value.to_dict()["error"] == "not_found"


def test_available_items_ordered_by_barcode(api, library, now):
    api.add_item(library.book.id, "DSP-000")
    api.checkout("alice", library.items[1].id, library.book.id, now=now)

    barcodes = [i.barcode for i in api.get_available_items(library.book.id)]
    assert barcodes == ["DSP-000", "DSP-001", "DSP-003"]


def test_available_items_for_missing_book(api):
    with pytest.raises(NotFoundError):
        api.get_available_items(7)


def test_adjust_available_copies_bounds(txn, library):
    book = inventory.get_book(txn, library.book.id)
    with pytest.raises(InvalidStateError) as exc:
        inventory.adjust_available_copies(txn, book, +1)
    assert exc.value.state == "overfull"

    book.available_copies = 0
    with pytest.raises(InvalidStateError) as exc:
        inventory.adjust_available_copies(txn, book, -1)
    assert exc.value.state == "unavailable"


def test_item_transition_rules(txn, library):
    item = inventory.get_item(txn, library.items[0].id)
    inventory.mark_item_borrowed(txn, item)
    with pytest.raises(InvalidStateError):
        inventory.mark_item_borrowed(txn, item)
    inventory.mark_item_available(txn, item)
    assert item.status is ItemStatus.AVAILABLE


def test_recompute_counters_repairs_drift(api, library, session_factory, now, check_invariants):
    api.checkout("alice", library.items[0].id, library.book.id, now=now)

    db = session_factory()
    try:
        db.get(Book, library.book.id).available_copies = 3
        db.get(Patron, "alice").borrowed_count = 0
        db.get(Patron, "bob").borrowed_count = 2
        db.commit()
    finally:
        db.close()

    corrections = api.recompute_counters()
    assert {"book_id": library.book.id,
            "available_copies": [3, 2],
            "total_copies": [3, 3]} in corrections
    assert {"patron_id": "alice", "borrowed_count": [0, 1]} in corrections
    assert {"patron_id": "bob", "borrowed_count": [2, 0]} in corrections
    check_invariants()

    assert api.recompute_counters() == []


def test_recompute_counters_for_one_book_leaves_patrons(api, library, session_factory):
    db = session_factory()
    try:
        db.get(Patron, "bob").borrowed_count = 1
        db.commit()
    finally:
        db.close()

    assert api.recompute_counters(book_id=library.book.id) == []
    assert api.get_patron("bob").borrowed_count == 1
