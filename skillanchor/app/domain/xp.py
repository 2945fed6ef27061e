"""Star average and experience-point scoring for a rating submission.

Runs once, when a rating is recorded. The results are stored and later fed
unchanged into the session hash.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Sequence


class SkillLevel(str, Enum):
    NOVICE = "Novice"
    SKILLED = "Skilled"
    EXPERT = "Expert"
    MASTER = "Master"


BASE_XP = 50
STAR_MULT = 30
LEVEL_MULT = {
    SkillLevel.NOVICE: 1.0,
    SkillLevel.SKILLED: 1.2,
    SkillLevel.EXPERT: 1.5,
    SkillLevel.MASTER: 1.8,
}
GROUP_DAMP_PER_SEAT = 0.05
GROUP_DAMP_MAX = 0.40
ON_TIME_BONUS = 1.10
XP_MIN = 25
XP_MAX = 600


@dataclass(frozen=True)
class SkillScore:
    skill_id: int
    stars: int

    def __post_init__(self) -> None:
        if not 1 <= self.stars <= 5:
            raise ValueError(f"stars must be between 1 and 5, got {self.stars}")


@dataclass(frozen=True)
class XPResult:
    stars_avg: float
    xp: int


def _round_half_up(value: float, places: str = "1") -> Decimal:
    return Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def compute_stars_avg(scores: Sequence[SkillScore]) -> float:
    n = max(1, len(scores))
    total = sum(score.stars for score in scores)
    return float(_round_half_up(total / n, "0.1"))


def compute_xp(
    scores: Sequence[SkillScore],
    level: SkillLevel = SkillLevel.NOVICE,
    seats: int = 1,
    submitted_at: Optional[datetime] = None,
    due_at: Optional[datetime] = None,
) -> XPResult:
    stars_avg = compute_stars_avg(scores)

    damp = min(GROUP_DAMP_MAX, max(0.0, (seats - 1) * GROUP_DAMP_PER_SEAT))
    on_time = True
    if due_at is not None and submitted_at is not None:
        on_time = submitted_at <= due_at

    xp = BASE_XP + STAR_MULT * stars_avg
    xp *= LEVEL_MULT[SkillLevel(level)]
    xp *= 1 - damp
    if on_time:
        xp *= ON_TIME_BONUS

    clamped = min(XP_MAX, max(XP_MIN, xp))
    return XPResult(stars_avg=stars_avg, xp=int(_round_half_up(clamped)))
