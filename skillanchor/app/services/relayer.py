"""Anchoring orchestrator: drives unanchored ratings onto the ledger.

A pass is safe to re-run at any time. Hashes are recomputed from stored data
on every visit and simply overwritten, and a skill line whose ``on_chain``
flag is already set is never submitted again, so a pass that crashed half
way resumes from whatever is still off chain.

Passes must not overlap on the same signing account; see
``infra.db.relayer_lock``.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol

from ..domain.errors import LedgerError, PersistenceError
from ..domain.hashing import SessionHashes, compute_session_hashes
from ..domain.models import RatingSessionRead, SkillLineRead
from ..config import Settings
from ..infra.chain import AnchorReceipt, LedgerClient
from ..infra.db import get_session, init_db, make_engine, relayer_lock
from .rating_store import RatingStoreGateway

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    def anchor_skill_rating(
        self,
        session_hash: bytes,
        task_hash: bytes,
        subject_hash: bytes,
        rater_did: str,
        rated_did: str,
        skill_id: int,
        skill_name: str,
        stars: int,
    ) -> AnchorReceipt: ...


@dataclass
class RelayerContext:
    """Dependencies of one relayer process, built once at start-up."""

    store: RatingStoreGateway
    ledger: Ledger


class SessionStatus(str, Enum):
    ANCHORED = "anchored"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SessionOutcome:
    session_id: str
    status: SessionStatus
    submitted: int = 0
    failed: int = 0
    error: Optional[str] = None


@dataclass
class PassReport:
    outcomes: List[SessionOutcome] = field(default_factory=list)
    stopped: bool = False

    def _count(self, status: SessionStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def sessions_seen(self) -> int:
        return len(self.outcomes)

    @property
    def anchored(self) -> int:
        return self._count(SessionStatus.ANCHORED)

    @property
    def partial(self) -> int:
        return self._count(SessionStatus.PARTIAL)

    @property
    def skipped(self) -> int:
        return self._count(SessionStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(SessionStatus.FAILED)

    @property
    def lines_submitted(self) -> int:
        return sum(outcome.submitted for outcome in self.outcomes)

    @property
    def lines_failed(self) -> int:
        return sum(outcome.failed for outcome in self.outcomes)

    def to_dict(self) -> dict:
        return {
            "sessions_seen": self.sessions_seen,
            "anchored": self.anchored,
            "partial": self.partial,
            "skipped": self.skipped,
            "failed": self.failed,
            "lines_submitted": self.lines_submitted,
            "lines_failed": self.lines_failed,
            "stopped": self.stopped,
            "outcomes": [
                {**asdict(outcome), "status": outcome.status.value}
                for outcome in self.outcomes
            ],
        }


class _StopRequested(Exception):
    pass


class AnchoringOrchestrator:
    def __init__(
        self,
        context: RelayerContext,
        stop_requested: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.store = context.store
        self.ledger = context.ledger
        self._stop_requested = stop_requested or (lambda: False)

    def run_pass(self) -> PassReport:
        """Visit every unanchored session once, oldest first."""
        report = PassReport()
        sessions = self.store.list_unanchored_sessions()
        logger.info("Found %d unanchored rating session(s)", len(sessions))
        if not sessions:
            return report

        for rating in sessions:
            if self._stop_requested():
                report.stopped = True
                break
            outcome = SessionOutcome(session_id=rating.id, status=SessionStatus.PARTIAL)
            try:
                self._anchor_session(rating, outcome)
            except _StopRequested:
                report.outcomes.append(outcome)
                report.stopped = True
                break
            except PersistenceError as exc:
                logger.error("Abandoning rating %s for this pass: %s", rating.id, exc)
                outcome.status = SessionStatus.FAILED
                outcome.error = str(exc)
            report.outcomes.append(outcome)

        logger.info(
            "Pass finished: %d anchored, %d partial, %d skipped, %d failed, "
            "%d skill(s) submitted, %d skill(s) failed%s",
            report.anchored,
            report.partial,
            report.skipped,
            report.failed,
            report.lines_submitted,
            report.lines_failed,
            " (stopped early)" if report.stopped else "",
        )
        return report

    def _anchor_session(self, rating: RatingSessionRead, outcome: SessionOutcome) -> None:
        logger.info("Processing rating session %s", rating.id)
        lines = self.store.list_skill_lines(rating.id)
        if not lines:
            logger.warning("No skills found for rating %s; skipping", rating.id)
            outcome.status = SessionStatus.SKIPPED
            return

        rater_did = self.store.resolve_did(rating.rater_id)
        rated_did = self.store.resolve_did(rating.rated_user_id)

        hashes = compute_session_hashes(rating, lines)
        hex_hashes = hashes.as_hex()
        logger.debug("Hashes for rating %s: %s", rating.id, hex_hashes)
        self.store.record_session_hashes(
            rating.id,
            hex_hashes["rating_session_hash"],
            hex_hashes["task_id_hash"],
            hex_hashes["subject_id_hash"],
        )

        all_anchored = True
        for line in lines:
            if line.on_chain:
                logger.debug("Skill %s of rating %s already anchored", line.skill_id, rating.id)
                continue
            if self._stop_requested():
                raise _StopRequested()
            receipt = self._submit_line(rating, line, hashes, rater_did, rated_did)
            if receipt is None:
                outcome.failed += 1
                all_anchored = False
                continue
            try:
                self.store.record_skill_anchored(line.id, receipt.tx_hash)
            except PersistenceError:
                logger.error(
                    "Skill %s of rating %s landed in tx %s but could not be recorded",
                    line.skill_id,
                    rating.id,
                    receipt.tx_hash,
                )
                raise
            outcome.submitted += 1

        if all_anchored:
            self.store.record_session_fully_anchored(rating.id)
            outcome.status = SessionStatus.ANCHORED
            logger.info("Rating %s is fully anchored", rating.id)
        else:
            outcome.status = SessionStatus.PARTIAL
            logger.warning(
                "Rating %s left partially anchored (%d skill(s) failed)", rating.id, outcome.failed
            )

    def _submit_line(
        self,
        rating: RatingSessionRead,
        line: SkillLineRead,
        hashes: SessionHashes,
        rater_did: str,
        rated_did: str,
    ) -> Optional[AnchorReceipt]:
        logger.info("Anchoring skill %s for rating %s", line.skill_id, rating.id)
        try:
            receipt = self.ledger.anchor_skill_rating(
                hashes.session_hash,
                hashes.task_hash,
                hashes.subject_hash,
                rater_did,
                rated_did,
                line.skill_id,
                line.display_name,
                line.stars,
            )
        except LedgerError as exc:
            logger.error(
                "Failed to anchor skill %s of rating %s: %s%s",
                line.skill_id,
                rating.id,
                exc,
                f" (tx {exc.tx_hash})" if exc.tx_hash else "",
            )
            return None
        logger.info(
            "Skill %s of rating %s confirmed in block %s (tx %s)",
            line.skill_id,
            rating.id,
            receipt.block_number,
            receipt.tx_hash,
        )
        return receipt


def hashes_match(rating: RatingSessionRead, lines: List[SkillLineRead]) -> dict:
    """Compare stored hashes with ones recomputed from stored data."""
    expected = compute_session_hashes(rating, lines).as_hex()
    return {
        name: {
            "stored": getattr(rating, name),
            "expected": value,
            "ok": getattr(rating, name) == value,
        }
        for name, value in expected.items()
    }


def run_relayer(
    settings: Settings,
    stop_requested: Optional[Callable[[], bool]] = None,
    ledger: Optional[Ledger] = None,
    create_tables: bool = False,
) -> Optional[PassReport]:
    """Build the process dependencies and run a single pass.

    Returns None when another pass holds the relayer lock.
    """
    ledger = ledger or LedgerClient.from_settings(settings)
    engine = make_engine(settings.database_url)
    try:
        if create_tables:
            init_db(engine)
        with relayer_lock(engine) as acquired:
            if not acquired:
                logger.warning("Another relayer pass is running; nothing to do")
                return None
            with get_session(engine) as session:
                context = RelayerContext(store=RatingStoreGateway(session), ledger=ledger)
                return AnchoringOrchestrator(context, stop_requested).run_pass()
    finally:
        engine.dispose()


__all__ = [
    "AnchoringOrchestrator",
    "PassReport",
    "RelayerContext",
    "SessionOutcome",
    "SessionStatus",
    "hashes_match",
    "run_relayer",
]
