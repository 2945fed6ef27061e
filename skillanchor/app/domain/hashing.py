"""Canonical content hashes for rating sessions.

The session hash is the on-chain integrity anchor for a whole rating event.
It must come out byte-identical from the same logical data no matter how the
skill lines were retrieved, so lines are sorted by ``skill_id`` and the
payload is serialised with a fixed field order and fixed number formatting.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Union

from web3 import Web3


class _SessionLike(Protocol):
    id: str
    task_id: str
    rater_id: str
    rated_user_id: str
    stars_avg: float
    xp: int


class _LineLike(Protocol):
    skill_id: int
    stars: int


@dataclass(frozen=True)
class SessionHashes:
    session_hash: bytes
    task_hash: bytes
    subject_hash: bytes

    def as_hex(self) -> dict:
        return {
            "rating_session_hash": to_hex(self.session_hash),
            "task_id_hash": to_hex(self.task_hash),
            "subject_id_hash": to_hex(self.subject_hash),
        }


def keccak(data: bytes) -> bytes:
    return bytes(Web3.keccak(primitive=data))


def to_hex(digest: bytes) -> str:
    return "0x" + digest.hex()


def hash_identifier(value: str) -> bytes:
    """keccak-256 of the UTF-8 encoding of ``value``."""
    return keccak(value.encode("utf-8"))


def _canonical_number(value: Union[int, float]) -> Union[int, float]:
    # 4.0 serialises as 4, matching how the stored averages were first hashed
    rounded = round(float(value), 1)
    if rounded.is_integer():
        return int(rounded)
    return rounded


def canonical_session(session: _SessionLike, lines: Iterable[_LineLike]) -> dict:
    skills = sorted(
        ({"skill_id": int(line.skill_id), "stars": int(line.stars)} for line in lines),
        key=lambda item: item["skill_id"],
    )
    payload: dict[str, Any] = {
        "rating_id": session.id,
        "task_id": session.task_id,
        "rater_id": session.rater_id,
        "rated_user_id": session.rated_user_id,
        "stars_avg": _canonical_number(session.stars_avg),
        "xp": int(session.xp),
        "skills": skills,
    }
    return payload


def canonical_session_bytes(session: _SessionLike, lines: Iterable[_LineLike]) -> bytes:
    """Serialise with insertion order preserved; never sort keys here."""
    return json.dumps(
        canonical_session(session, lines),
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")


def hash_session(session: _SessionLike, lines: Iterable[_LineLike]) -> bytes:
    return keccak(canonical_session_bytes(session, lines))


def compute_session_hashes(session: _SessionLike, lines: Iterable[_LineLike]) -> SessionHashes:
    return SessionHashes(
        session_hash=hash_session(session, lines),
        task_hash=hash_identifier(session.task_id),
        subject_hash=hash_identifier(session.rated_user_id),
    )
