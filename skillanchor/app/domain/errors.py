"""Error taxonomy for the anchoring relayer."""
from __future__ import annotations

from typing import Optional


class AnchoringError(Exception):
    """Base class for every relayer error."""


class ConfigurationError(AnchoringError):
    """Required configuration is missing or malformed. Fatal."""


class PersistenceError(AnchoringError):
    """A row is missing or the relational store rejected a write."""


class RatingLockedError(PersistenceError):
    """A write-once or monotonic field was about to change."""


class LedgerError(AnchoringError):
    """The ledger interaction did not complete.

    Does not imply that nothing happened on chain: a transaction may still
    land after the error was raised.
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class SubmissionError(LedgerError):
    """The RPC rejected the transaction or it reverted."""


class ConfirmationError(LedgerError):
    """The transaction was sent but no receipt arrived in time."""
