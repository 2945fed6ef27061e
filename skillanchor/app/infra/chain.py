"""Ledger client for the skill-ratings contract.

One call, one transaction: ``anchor_skill_rating`` signs locally, submits,
and blocks until the receipt is available or the confirmation timeout runs
out. Resubmitting the same arguments creates a second on-chain event, so the
caller is responsible for never calling it twice for the same skill line.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from eth_account import Account
from pydantic import BaseModel
from web3 import Web3
from web3.exceptions import TimeExhausted

from ..config import Settings
from ..domain.errors import ConfigurationError, ConfirmationError, SubmissionError

logger = logging.getLogger(__name__)

ANCHOR_FUNCTION = "anchorSingleSkillRating"

SKILL_RATINGS_ABI: list[dict[str, Any]] = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "internalType": "bytes32", "name": "ratingSessionHash", "type": "bytes32"},
            {"indexed": False, "internalType": "bytes32", "name": "taskIdHash", "type": "bytes32"},
            {"indexed": False, "internalType": "bytes32", "name": "subjectIdHash", "type": "bytes32"},
            {"indexed": False, "internalType": "string", "name": "raterDid", "type": "string"},
            {"indexed": False, "internalType": "string", "name": "ratedDid", "type": "string"},
            {"indexed": False, "internalType": "uint16", "name": "skillId", "type": "uint16"},
            {"indexed": False, "internalType": "string", "name": "skillName", "type": "string"},
            {"indexed": False, "internalType": "uint8", "name": "stars", "type": "uint8"},
            {"indexed": False, "internalType": "uint40", "name": "timestamp", "type": "uint40"},
        ],
        "name": "SkillRatingAnchored",
        "type": "event",
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "ratingSessionHash", "type": "bytes32"},
            {"internalType": "bytes32", "name": "taskIdHash", "type": "bytes32"},
            {"internalType": "bytes32", "name": "subjectIdHash", "type": "bytes32"},
            {"internalType": "string", "name": "raterDid", "type": "string"},
            {"internalType": "string", "name": "ratedDid", "type": "string"},
            {"internalType": "uint16", "name": "skillId", "type": "uint16"},
            {"internalType": "string", "name": "skillName", "type": "string"},
            {"internalType": "uint8", "name": "stars", "type": "uint8"},
        ],
        "name": ANCHOR_FUNCTION,
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "relayer",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class AnchorReceipt(BaseModel):
    tx_hash: str
    block_number: int


def _require_digest(name: str, value: bytes) -> bytes:
    if len(value) != 32:
        raise SubmissionError(f"{name} must be 32 bytes, got {len(value)}")
    return bytes(value)


class LedgerClient:
    """Signing account plus RPC connection to the skill-ratings contract."""

    def __init__(
        self,
        rpc_url: Optional[str],
        private_key: Optional[str],
        contract_address: Optional[str],
        *,
        confirmation_timeout: float = 120.0,
        poll_interval: float = 2.0,
        request_timeout: float = 30.0,
        web3: Optional[Web3] = None,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("rpc_url", rpc_url),
                ("private_key", private_key),
                ("contract_address", contract_address),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Ledger client missing: {', '.join(missing)}")

        try:
            self.account = Account.from_key(private_key)
            address = Web3.to_checksum_address(contract_address)
        except Exception as exc:
            raise ConfigurationError(f"Invalid ledger credentials: {exc}") from exc

        self.w3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )
        self.contract = self.w3.eth.contract(address=address, abi=SKILL_RATINGS_ABI)
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(cls, settings: Settings) -> "LedgerClient":
        return cls(
            settings.rpc_url,
            settings.private_key,
            settings.contract_address,
            confirmation_timeout=settings.confirmation_timeout,
            poll_interval=settings.poll_interval,
            request_timeout=settings.rpc_timeout,
        )

    @property
    def address(self) -> str:
        return self.account.address

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
    ) -> AnchorReceipt:
        if not 0 <= skill_id <= 0xFFFF:
            raise SubmissionError(f"skill_id {skill_id} does not fit uint16")
        if not 0 <= stars <= 0xFF:
            raise SubmissionError(f"stars {stars} does not fit uint8")

        args = (
            _require_digest("session_hash", session_hash),
            _require_digest("task_hash", task_hash),
            _require_digest("subject_hash", subject_hash),
            rater_did,
            rated_did,
            skill_id,
            skill_name,
            stars,
        )
        tx_hash = self._submit(args)
        logger.info("Transaction sent for skill %s: %s", skill_id, tx_hash)
        return self._wait(tx_hash)

    def _submit(self, args: tuple) -> str:
        try:
            call = self.contract.functions.anchorSingleSkillRating(*args)
            tx = call.build_transaction(
                {
                    "from": self.account.address,
                    "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                    "chainId": self.w3.eth.chain_id,
                }
            )
            signed = self.account.sign_transaction(tx)
            sent = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise SubmissionError(f"Transaction rejected: {exc}") from exc
        return Web3.to_hex(sent)

    def _wait(self, tx_hash: str) -> AnchorReceipt:
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.confirmation_timeout,
                poll_latency=self.poll_interval,
            )
        except TimeExhausted as exc:
            raise ConfirmationError(
                f"Transaction {tx_hash} not confirmed within {self.confirmation_timeout}s",
                tx_hash=tx_hash,
            ) from exc
        except Exception as exc:
            raise ConfirmationError(
                f"Could not fetch receipt for {tx_hash}: {exc}", tx_hash=tx_hash
            ) from exc

        if receipt["status"] != 1:
            raise SubmissionError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)
        return AnchorReceipt(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
        )
