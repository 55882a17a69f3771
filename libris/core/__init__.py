#!/usr/bin/env python

"""
    Core module for Libris: database setup and the circulation engine

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from libris.core import db as database

db = database.init()

__all__ = ["db", "database"]
