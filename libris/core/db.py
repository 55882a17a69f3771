import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from libris.configs import DB_URI, DEBUG

logger = logging.getLogger(__name__)


def make_engine(uri=DB_URI, echo=DEBUG):
    # Only use client_encoding for PostgreSQL, not SQLite
    engine_kwargs = {'echo': echo}
    if uri.startswith('sqlite'):
        engine_kwargs['connect_args'] = {'check_same_thread': False}
        if ':memory:' in uri:
            engine_kwargs['poolclass'] = StaticPool
    else:
        engine_kwargs['client_encoding'] = 'utf8'
    return create_engine(uri, **engine_kwargs)


def make_session_factory(bind):
    """Sessions keep attribute values after commit so records can be
    serialized once the transaction that produced them has closed.
    """
    return sessionmaker(
        bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)

Base = declarative_base()


def init(bind=engine):
    try:
        # Register every table on Base before creating them
        from libris.core import models  # noqa: F401
        Base.metadata.create_all(bind=bind)
        return bind
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {e}")
