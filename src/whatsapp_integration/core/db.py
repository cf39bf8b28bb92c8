"""
Database session helpers.

The engine is built lazily from DATABASE_URL; SQLite URLs (local runs and
tests) get a connection that may be shared across threads.
"""

import functools

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from whatsapp_integration.core.settings import get_settings


@functools.lru_cache()
def get_engine() -> Engine:
    """Get the integration engine (cached)."""
    url = make_url(get_settings().DATABASE_URL)
    connect_args = {"check_same_thread": False} if url.get_backend_name() == "sqlite" else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def open_session() -> Session:
    """New session; the caller closes it."""
    return get_sessionmaker()()


def get_db():
    """FastAPI dependency yielding a session that is closed after the request."""
    db = open_session()
    try:
        yield db
    finally:
        db.close()
