"""Helpers and Flask application integration."""

from typing import Generator, Optional
from datetime import datetime
from contextlib import contextmanager
import hashlib
import logging

from flask import Flask
from pytz import UTC
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.session import Session

from .models import db
from .exceptions import Unavailable

logger = logging.getLogger(__name__)


def now() -> datetime:
    """Get the current time, in UTC."""
    return datetime.now(tz=UTC)


def as_utc(t: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime loaded from a database without tz."""
    if t is not None and t.tzinfo is None:
        return t.replace(tzinfo=UTC)
    return t


def sha256_hex(value: str) -> str:
    """Hex digest of the SHA-256 hash of ``value``."""
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


@contextmanager
def transaction() -> Generator:
    """Context manager for database transaction."""
    try:
        yield db.session
        # Flushed rows are neither new nor dirty, but still uncommitted.
        db.session.commit()
    except OperationalError as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        db.session.rollback()
        raise Unavailable('Database is temporarily unavailable') from e
    except Exception as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        db.session.rollback()
        raise


def init_app(app: Flask) -> None:
    """Attach the database session to the application."""
    db.init_app(app)


def current_session() -> Session:
    """Get/create database session for this context."""
    return db.session


def create_all() -> None:
    """Create all tables in the database."""
    db.create_all()


def drop_all() -> None:
    """Drop all tables in the database."""
    db.drop_all()
