from datetime import datetime

import pytest
from fastapi import HTTPException
from sqlmodel import Session, SQLModel

from skillanchor.app.domain.models import RatingSession, Skill, SkillRatingLine
from skillanchor.app.domain.schemas import AnchoringState
from skillanchor.app.infra.db import make_engine
from skillanchor.app.main import app
from skillanchor.app.routers.ratings import get_rating_status, list_unanchored
from skillanchor.app.services.rating_store import RatingStoreGateway


def _store():
    engine = make_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    db = Session(engine)
    db.add(
        RatingSession(
            id="r1",
            task_id="task-1",
            rater_id="edu-1",
            rated_user_id="stu-1",
            stars_avg=4.5,
            xp=204,
            created_at=datetime(2024, 1, 1),
        )
    )
    db.flush()
    db.add(Skill(id=1, name="Communication"))
    db.add(SkillRatingLine(rating_id="r1", skill_id=1, stars=4, tx_hash="0xabc", on_chain=True))
    db.add(SkillRatingLine(rating_id="r1", skill_id=2, stars=5))
    db.commit()
    return RatingStoreGateway(db)


def test_app_title():
    assert app.title == "SkillAnchor API"


def test_router_tags_present():
    tags = {tag for route in app.routes for tag in getattr(route, "tags", [])}
    assert "ratings" in tags


def test_rating_status_reports_partial_anchoring():
    status = get_rating_status("r1", store=_store())
    assert status.anchoring == AnchoringState.PARTIAL
    skills = {skill.skill_id: skill for skill in status.skills}
    assert skills[1].skill_name == "Communication"
    assert skills[1].explorer_url == "https://polygonscan.com/tx/0xabc"
    assert skills[2].skill_name == "Skill 2"
    assert skills[2].explorer_url is None


def test_unknown_rating_is_404():
    with pytest.raises(HTTPException) as excinfo:
        get_rating_status("nope", store=_store())
    assert excinfo.value.status_code == 404


def test_unanchored_listing():
    assert [rating.id for rating in list_unanchored(store=_store())] == ["r1"]
