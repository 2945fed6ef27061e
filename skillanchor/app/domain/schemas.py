"""API I/O schemas."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from .models import RatingSessionRead, SkillLineRead

EXPLORER_TX_URL = "https://polygonscan.com/tx/{tx_hash}"


class AnchoringState(str, Enum):
    OFF_CHAIN = "off_chain"
    PARTIAL = "partial"
    ON_CHAIN = "on_chain"


class SkillLineOut(BaseModel):
    skill_id: int
    skill_name: str
    stars: int
    on_chain: bool
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None


class RatingStatusOut(RatingSessionRead):
    anchoring: AnchoringState
    skills: List[SkillLineOut]


def explorer_url(tx_hash: Optional[str]) -> Optional[str]:
    if not tx_hash:
        return None
    return EXPLORER_TX_URL.format(tx_hash=tx_hash)


def anchoring_state(lines: List[SkillLineRead]) -> AnchoringState:
    if lines and all(line.on_chain for line in lines):
        return AnchoringState.ON_CHAIN
    if any(line.on_chain for line in lines):
        return AnchoringState.PARTIAL
    return AnchoringState.OFF_CHAIN


def rating_status(rating: RatingSessionRead, lines: List[SkillLineRead]) -> RatingStatusOut:
    return RatingStatusOut(
        **rating.model_dump(),
        anchoring=anchoring_state(lines),
        skills=[
            SkillLineOut(
                skill_id=line.skill_id,
                skill_name=line.display_name,
                stars=line.stars,
                on_chain=line.on_chain,
                tx_hash=line.tx_hash,
                explorer_url=explorer_url(line.tx_hash),
            )
            for line in lines
        ],
    )
