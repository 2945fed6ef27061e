"""Gateway to the off-chain rating store."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..domain.errors import PersistenceError
from ..domain.models import (
    RatingSession,
    RatingSessionRead,
    Skill,
    SkillLineRead,
    SkillRatingLine,
    UserProfile,
)
from ..domain.schemas import RatingStatusOut, rating_status
from ..domain.xp import SkillLevel, SkillScore, compute_xp

logger = logging.getLogger(__name__)


class RatingStoreGateway:
    """Reads unanchored work and persists anchoring state transitions.

    Every write commits on its own so each transition survives a crash that
    happens right after it.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except PersistenceError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"{action} failed: {exc}") from exc

    # read side

    def list_unanchored_sessions(self) -> list[RatingSessionRead]:
        stmt = (
            select(RatingSession)
            .where(RatingSession.on_chain == False)  # noqa: E712
            .order_by(RatingSession.created_at.asc(), RatingSession.id.asc())
        )
        with self._guard("listing unanchored sessions"):
            rows = self.session.exec(stmt).all()
            return [RatingSessionRead.model_validate(row) for row in rows]

    def list_skill_lines(self, session_id: str) -> list[SkillLineRead]:
        stmt = (
            select(SkillRatingLine, Skill.name)
            .join(Skill, Skill.id == SkillRatingLine.skill_id, isouter=True)
            .where(SkillRatingLine.rating_id == session_id)
            .order_by(SkillRatingLine.skill_id.asc())
        )
        with self._guard(f"listing skill lines for {session_id}"):
            rows = self.session.exec(stmt).all()
            return [
                SkillLineRead.model_validate(line).model_copy(update={"skill_name": name})
                for line, name in rows
            ]

    def get_session(self, session_id: str) -> Optional[RatingSessionRead]:
        with self._guard(f"loading rating {session_id}"):
            row = self.session.get(RatingSession, session_id)
            return RatingSessionRead.model_validate(row) if row else None

    def anchoring_status(self, session_id: str) -> Optional[RatingStatusOut]:
        """Session fields plus per-skill anchoring state, or None if unknown."""
        rating = self.get_session(session_id)
        if rating is None:
            return None
        return rating_status(rating, self.list_skill_lines(session_id))

    def resolve_did(self, user_id: str) -> str:
        """Best effort: an empty string stands in for a missing identity."""
        try:
            profile = self.session.get(UserProfile, user_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("DID lookup failed for user %s: %s", user_id, exc)
            return ""
        if profile is None:
            logger.warning("No identity record for user %s; using empty DID", user_id)
            return ""
        if not profile.did:
            logger.warning("Identity record for user %s has no DID; using empty DID", user_id)
            return ""
        return profile.did

    # write side

    def record_session_hashes(
        self,
        session_id: str,
        session_hash: str,
        task_hash: str,
        subject_hash: str,
    ) -> None:
        with self._guard(f"recording hashes for {session_id}"):
            rating = self.session.get(RatingSession, session_id)
            if rating is None:
                raise PersistenceError(f"Rating session {session_id} no longer exists")
            rating.rating_session_hash = session_hash
            rating.task_id_hash = task_hash
            rating.subject_id_hash = subject_hash
            self.session.add(rating)
            self.session.commit()

    def record_skill_anchored(self, line_id: str, tx_hash: str) -> None:
        if not tx_hash:
            raise PersistenceError(f"Refusing to anchor skill line {line_id} without a tx hash")
        with self._guard(f"recording anchor for skill line {line_id}"):
            line = self.session.get(SkillRatingLine, line_id)
            if line is None:
                raise PersistenceError(f"Skill line {line_id} no longer exists")
            line.tx_hash = tx_hash
            line.on_chain = True
            self.session.add(line)
            self.session.commit()

    def record_session_fully_anchored(self, session_id: str) -> None:
        with self._guard(f"marking {session_id} anchored"):
            rating = self.session.get(RatingSession, session_id)
            if rating is None:
                raise PersistenceError(f"Rating session {session_id} no longer exists")
            pending = self.session.exec(
                select(SkillRatingLine.id)
                .where(SkillRatingLine.rating_id == session_id)
                .where(SkillRatingLine.on_chain == False)  # noqa: E712
            ).all()
            if pending:
                raise PersistenceError(
                    f"Rating session {session_id} still has {len(pending)} skill(s) off chain"
                )
            rating.on_chain = True
            self.session.add(rating)
            self.session.commit()

    def record_rating(
        self,
        task_id: str,
        rater_id: str,
        rated_user_id: str,
        scores: Sequence[SkillScore],
        *,
        level: SkillLevel = SkillLevel.NOVICE,
        seats: int = 1,
        submitted_at: Optional[datetime] = None,
        due_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> RatingSessionRead:
        """Create a session and its skill lines in one transaction."""
        if not scores:
            raise ValueError("a rating needs at least one skill score")
        skill_ids = [score.skill_id for score in scores]
        if len(set(skill_ids)) != len(skill_ids):
            raise ValueError("each skill can be rated once per session")

        result = compute_xp(
            scores,
            level=level,
            seats=seats,
            submitted_at=submitted_at or datetime.utcnow(),
            due_at=due_at,
        )
        with self._guard(f"recording rating for task {task_id}"):
            rating = RatingSession(
                task_id=task_id,
                rater_id=rater_id,
                rated_user_id=rated_user_id,
                stars_avg=result.stars_avg,
                xp=result.xp,
                created_at=created_at or datetime.utcnow(),
            )
            self.session.add(rating)
            self.session.flush()
            for score in scores:
                self.session.add(
                    SkillRatingLine(
                        rating_id=rating.id,
                        skill_id=score.skill_id,
                        stars=score.stars,
                        created_at=rating.created_at,
                    )
                )
            self.session.commit()
            self.session.refresh(rating)
            return RatingSessionRead.model_validate(rating)
