#!/usr/bin/env python

"""
    Configurations for Libris

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import os


# Determine environment
TESTING = os.getenv("TESTING", "false").lower() == "true"

# API server configuration
SCHEME = 'http'
HOST = os.environ.get('LIBRIS_HOST', 'localhost')
PORT = int(os.environ.get('LIBRIS_PORT', 8080))
WORKERS = int(os.environ.get('LIBRIS_WORKERS', 1))
DEBUG = bool(int(os.environ.get('LIBRIS_DEBUG', 0)))
LOG_LEVEL = os.environ.get('LIBRIS_LOG_LEVEL', 'info')
SSL_CRT = os.environ.get('LIBRIS_SSL_CRT')
SSL_KEY = os.environ.get('LIBRIS_SSL_KEY')
CORS_ORIGINS = os.environ.get('LIBRIS_CORS_ORIGINS', 'http://localhost:3000').split(',')

OPTIONS = {
    'host': HOST,
    'port': PORT,
    'log_level': LOG_LEVEL,
    'reload': DEBUG,
    'workers': WORKERS,
}
if SSL_CRT and SSL_KEY:
    OPTIONS['ssl_keyfile'] = SSL_KEY
    OPTIONS['ssl_certfile'] = SSL_CRT
    SCHEME = 'https'

DB_CONFIG = {
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASSWORD'),
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', '5432')),
    'dbname': os.environ.get('DB_NAME', 'libris'),
}

# Database configuration
DB_URI = os.environ.get('LIBRIS_DB_URI') or (
    "sqlite:///:memory:" if TESTING else
    'postgresql+psycopg2://{user}:{password}@{host}:{port}/{dbname}'.format(**DB_CONFIG)
)

# Circulation policy
LOAN_PERIOD_DAYS = int(os.environ.get('LIBRIS_LOAN_PERIOD_DAYS', 15))
MAX_RENEWALS = int(os.environ.get('LIBRIS_MAX_RENEWALS', 2))
RENEWAL_EXTENSION_DAYS = int(os.environ.get('LIBRIS_RENEWAL_EXTENSION_DAYS', 15))
FINE_PER_DAY = float(os.environ.get('LIBRIS_FINE_PER_DAY', 1.0))
MAX_BORROW_MEMBER = int(os.environ.get('LIBRIS_MAX_BORROW_MEMBER', 3))
MAX_BORROW_LIBRARIAN = int(os.environ.get('LIBRIS_MAX_BORROW_LIBRARIAN', 10))
RESERVATION_EXPIRY_DAYS = int(os.environ.get('LIBRIS_RESERVATION_EXPIRY_DAYS', 3))
DUE_SOON_DAYS = int(os.environ.get('LIBRIS_DUE_SOON_DAYS', 2))
RECONCILIATION_BATCH_SIZE = int(os.environ.get('LIBRIS_RECONCILIATION_BATCH_SIZE', 100))

# Transaction retry on concurrent writes
TXN_MAX_RETRIES = int(os.environ.get('LIBRIS_TXN_MAX_RETRIES', 3))
TXN_RETRY_BACKOFF = float(os.environ.get('LIBRIS_TXN_RETRY_BACKOFF', 0.05))

__all__ = [
    'SCHEME', 'HOST', 'PORT', 'DEBUG', 'OPTIONS', 'DB_URI', 'DB_CONFIG', 'TESTING',
    'LOG_LEVEL', 'CORS_ORIGINS', 'LOAN_PERIOD_DAYS', 'MAX_RENEWALS',
    'RENEWAL_EXTENSION_DAYS', 'FINE_PER_DAY', 'MAX_BORROW_MEMBER',
    'MAX_BORROW_LIBRARIAN', 'RESERVATION_EXPIRY_DAYS', 'DUE_SOON_DAYS',
    'RECONCILIATION_BATCH_SIZE', 'TXN_MAX_RETRIES', 'TXN_RETRY_BACKOFF',
]
