"""Dependency injection utilities."""
from collections.abc import Generator

from fastapi import Depends
from sqlmodel import Session

from .infra.db import get_session
from .services.rating_store import RatingStoreGateway


def db_session() -> Generator[Session, None, None]:
    """Provide a scoped DB session to FastAPI endpoints."""
    with get_session() as session:
        yield session


def rating_store(session: Session = Depends(db_session)) -> RatingStoreGateway:
    return RatingStoreGateway(session)
