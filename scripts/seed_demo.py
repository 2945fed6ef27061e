#!/usr/bin/env python3
"""Seed the rating store with demo skills, profiles and ratings."""
from __future__ import annotations

import argparse
import os
import random
from datetime import datetime, timedelta

from skillanchor.app.domain.models import Skill, UserProfile
from skillanchor.app.domain.xp import SkillLevel, SkillScore
from skillanchor.app.infra.db import get_session, init_db, make_engine
from skillanchor.app.services.rating_store import RatingStoreGateway

DEMO_SKILLS = {
    1: "Communication",
    2: "Problem Solving",
    3: "Teamwork",
    4: "Critical Thinking",
    5: "Time Management",
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed DB with demo ratings")
    parser.add_argument("--ratings", type=int, default=3)
    parser.add_argument(
        "--database-url",
        default=os.getenv("DATABASE_URL", "sqlite:///./skillanchor.db"),
    )
    return parser.parse_args()


def ensure_reference_data(db, count: int) -> None:
    for skill_id, name in DEMO_SKILLS.items():
        if not db.get(Skill, skill_id):
            db.add(Skill(id=skill_id, name=name))
    for idx in range(1, count + 1):
        for user_id in (f"edu-{idx}", f"stu-{idx}"):
            if not db.get(UserProfile, user_id):
                db.add(UserProfile(id=user_id, did=f"did:example:{user_id}"))
    db.commit()


def main() -> int:
    args = parse_args()
    engine = make_engine(args.database_url)
    init_db(engine)
    base_time = datetime.utcnow() - timedelta(days=1)
    with get_session(engine) as db:
        ensure_reference_data(db, args.ratings)
        store = RatingStoreGateway(db)
        for idx in range(1, args.ratings + 1):
            skill_ids = random.sample(sorted(DEMO_SKILLS), k=3)
            store.record_rating(
                task_id=f"task-{idx}",
                rater_id=f"edu-{idx}",
                rated_user_id=f"stu-{idx}",
                scores=[SkillScore(skill_id=s, stars=random.randint(1, 5)) for s in skill_ids],
                level=random.choice(list(SkillLevel)),
                created_at=base_time + timedelta(minutes=idx * 10),
            )
    print(f"Seeded {args.ratings} demo ratings.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
