"""Engine, session factory and transaction helpers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import get_settings
from .errors import StorageError

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


def _build_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout},
    )

    # pysqlite defers BEGIN until the first write, which lets two transactions
    # read the same room and then both insert. Take the write lock up front.
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(connection):  # pragma: no cover - driver hook
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


engine = _build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done in the block, or roll all of it back.

    Database errors are re-raised as :class:`StorageError` after the rollback;
    any other exception propagates unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("transaction rolled back: %s", exc)
        raise StorageError() from exc
    except Exception:
        db.rollback()
        raise


@contextmanager
def read_scope(db: Session) -> Iterator[Session]:
    """Run queries that write nothing; database errors come out as :class:`StorageError`."""
    try:
        yield db
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("read failed: %s", exc)
        raise StorageError() from exc


def with_transaction(fn: Callable[[Session], T], session_factory: Optional[sessionmaker] = None) -> T:
    """Run ``fn`` in a fresh session inside a single transaction."""

    factory = session_factory or SessionLocal
    db = factory()
    try:
        with atomic(db):
            return fn(db)
    finally:
        db.close()
