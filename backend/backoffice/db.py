# backend/backoffice/db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> Engine:
    kwargs: dict = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        # TestClient runs handlers in a worker thread
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


engine = make_engine(settings.database_url)

# Objects stay readable after commit: responses and notifications are built
# from rows the transaction just wrote.
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Standalone unit of work for workers, the CLI and post-commit side effects."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Iterator[Session]:
    """
    Request-scoped session.

    On PostgreSQL a failed statement aborts the transaction; rolling back here
    keeps a half-applied status change and its audit row from ever committing
    together with later work on the same connection.
    """
    with session_scope() as db:
        yield db
