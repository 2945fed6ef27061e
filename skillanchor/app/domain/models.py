"""Domain models shared between the relayer and persistence layers."""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session as OrmSession
from sqlmodel import Field as SQLField, SQLModel, select

from .errors import RatingLockedError


class RatingSession(SQLModel, table=True):
    """One educator's rating of one student on one task."""

    __tablename__ = "task_ratings"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True, index=True)
    task_id: str = SQLField(index=True)
    rater_id: str = SQLField(index=True)
    rated_user_id: str = SQLField(index=True)
    stars_avg: float
    xp: int
    rating_session_hash: Optional[str] = SQLField(default=None)
    task_id_hash: Optional[str] = SQLField(default=None)
    subject_id_hash: Optional[str] = SQLField(default=None)
    on_chain: bool = SQLField(default=False, index=True)
    created_at: datetime = SQLField(default_factory=datetime.utcnow, nullable=False, index=True)


class SkillRatingLine(SQLModel, table=True):
    """One skill's star score inside a rating session."""

    __tablename__ = "task_rating_skills"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True, index=True)
    rating_id: str = SQLField(foreign_key="task_ratings.id", index=True)
    skill_id: int
    stars: int
    tx_hash: Optional[str] = SQLField(default=None)
    on_chain: bool = SQLField(default=False)
    created_at: datetime = SQLField(default_factory=datetime.utcnow, nullable=False)


class Skill(SQLModel, table=True):
    __tablename__ = "skills"

    id: int = SQLField(primary_key=True)
    name: str


class UserProfile(SQLModel, table=True):
    """Maps an internal user id to a decentralized identifier."""

    __tablename__ = "user_profiles"

    id: str = SQLField(primary_key=True)
    did: Optional[str] = SQLField(default=None)


class RatingSessionRead(BaseModel):
    id: str
    task_id: str
    rater_id: str
    rated_user_id: str
    stars_avg: float
    xp: int
    rating_session_hash: Optional[str]
    task_id_hash: Optional[str]
    subject_id_hash: Optional[str]
    on_chain: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SkillLineRead(BaseModel):
    id: str
    rating_id: str
    skill_id: int
    stars: int
    tx_hash: Optional[str]
    on_chain: bool
    skill_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        return self.skill_name or f"Skill {self.skill_id}"


SCORED_FIELDS = ("task_id", "rater_id", "rated_user_id", "stars_avg", "xp")
LINE_IMMUTABLE_FIELDS = ("rating_id", "skill_id", "stars")


def _changed(obj, name: str):
    """Return (old, new) for a modified attribute, or None."""
    history = inspect(obj).attrs[name].history
    if not history.has_changes():
        return None
    old = history.deleted[0] if history.deleted else None
    new = history.added[0] if history.added else None
    return old, new


def _stored(session: OrmSession, obj, name: str):
    """Value of ``name`` as last flushed to the row.

    Attribute history loses the old value when the object was expired (after
    a commit or rollback) before being modified, so fall back to the row.
    """
    state = inspect(obj)
    history = state.attrs[name].history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    if state.key is None:
        return None
    model = type(obj)
    stmt = select(getattr(model, name)).where(model.id == obj.id)
    with session.no_autoflush:
        return session.scalars(stmt).first()


def _leaves_chain(session: OrmSession, obj) -> bool:
    flag = _changed(obj, "on_chain")
    if flag is None or flag[1]:
        return False
    return bool(_stored(session, obj, "on_chain"))


def _has_anchored_line(session: OrmSession, rating_id: str) -> bool:
    stmt = (
        select(SkillRatingLine.id)
        .where(SkillRatingLine.rating_id == rating_id)
        .where(SkillRatingLine.on_chain == True)  # noqa: E712
        .limit(1)
    )
    with session.no_autoflush:
        return session.scalars(stmt).first() is not None


def _check_rating_session(session: OrmSession, rating: RatingSession) -> None:
    if _leaves_chain(session, rating):
        raise RatingLockedError(f"rating {rating.id} cannot leave the chain once anchored")

    scored = [name for name in SCORED_FIELDS if _changed(rating, name)]
    if scored and _has_anchored_line(session, rating.id):
        raise RatingLockedError(
            f"rating {rating.id} has anchored skills; {', '.join(scored)} are locked"
        )


def _check_skill_line(session: OrmSession, line: SkillRatingLine) -> None:
    frozen = [name for name in LINE_IMMUTABLE_FIELDS if _changed(line, name)]
    if frozen:
        raise RatingLockedError(f"skill line {line.id}: {', '.join(frozen)} cannot change")

    if _leaves_chain(session, line):
        raise RatingLockedError(f"skill line {line.id} cannot leave the chain once anchored")

    tx = _changed(line, "tx_hash")
    if tx is None:
        return
    previous = _stored(session, line, "tx_hash")
    if tx[1] != previous and _stored(session, line, "on_chain"):
        raise RatingLockedError(f"skill line {line.id} already carries tx {previous}")


def _check_new_line(line: SkillRatingLine) -> None:
    if line.on_chain and not line.tx_hash:
        raise RatingLockedError(f"skill line {line.id} is on chain without a tx hash")


@event.listens_for(OrmSession, "before_flush")
def enforce_anchoring_invariants(session: OrmSession, flush_context, instances) -> None:
    """Reject writes that would break write-once or monotonic anchoring state."""
    for obj in session.new:
        if isinstance(obj, SkillRatingLine):
            _check_new_line(obj)
    for obj in session.dirty:
        if not session.is_modified(obj):
            continue
        if isinstance(obj, RatingSession):
            _check_rating_session(session, obj)
        elif isinstance(obj, SkillRatingLine):
            _check_skill_line(session, obj)
            _check_new_line(obj)
