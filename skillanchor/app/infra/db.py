"""Database session utilities."""
from __future__ import annotations

import logging
import os
import time
import zlib
from contextlib import contextmanager
from functools import lru_cache
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

from ..domain import models  # noqa: F401  registers tables on SQLModel.metadata

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./skillanchor.db"
RELAYER_LOCK_KEY = zlib.crc32(b"skillanchor.relayer")


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url, future=True, connect_args=connect_args, poolclass=StaticPool
            )
        return create_engine(url, future=True, connect_args=connect_args)
    return create_engine(url, future=True, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> Callable[[], Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        class_=Session,
    )


@lru_cache(maxsize=None)
def default_engine() -> Engine:
    """Engine for the read-only API, built on first use."""
    return make_engine(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL))


def init_db(engine: Engine, attempts: int = 30) -> None:
    """Create tables if they do not exist.

    Retries on startup to wait for the database service in Docker.
    """
    last_err: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            SQLModel.metadata.create_all(engine)
            return
        except Exception as exc:  # pragma: no cover
            last_err = exc
            logger.warning("waiting for database... (%d/%d) %s", attempt, attempts, exc)
            time.sleep(1)
    if last_err:
        raise last_err


@contextmanager
def get_session(engine: Optional[Engine] = None) -> Iterator[Session]:
    session = make_session_factory(engine or default_engine())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def relayer_lock(engine: Engine, key: int = RELAYER_LOCK_KEY) -> Iterator[bool]:
    """Hold a PostgreSQL advisory lock for the duration of one pass.

    Yields False when another pass already holds it. Other dialects have no
    cross-process lock here and always yield True. The lock connection runs
    in autocommit mode so it never sits idle inside a transaction while the
    pass waits on the ledger.
    """
    if "postgresql" not in engine.dialect.name:
        yield True
        return

    with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
        acquired = bool(
            conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar()
        )
        try:
            yield acquired
        finally:
            if acquired:
                conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
