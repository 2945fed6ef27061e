"""
SkillAnchor: anchors off-chain skill ratings to a blockchain ledger.

Ratings recorded in the relational store are hashed deterministically and
submitted one skill per transaction by a re-runnable relayer pass that
tracks per-skill and per-session confirmation.
"""

__all__ = [
    "hash_identifier",
    "hash_session",
]

from .app.domain.hashing import hash_identifier, hash_session

__version__ = "0.1.0"
