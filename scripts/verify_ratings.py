#!/usr/bin/env python3
"""
Recompute rating hashes from stored data and compare with the stored ones.

Usage:
    python scripts/verify_ratings.py [--rating-id <id>] [--database-url ...]
"""
from __future__ import annotations

import argparse
import os
import sys

from sqlmodel import select

from skillanchor.app.domain.models import RatingSession, RatingSessionRead
from skillanchor.app.infra.db import get_session, make_engine
from skillanchor.app.services.rating_store import RatingStoreGateway
from skillanchor.app.services.relayer import hashes_match


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify stored rating hashes.")
    parser.add_argument("--rating-id", help="Restrict verification to one rating")
    parser.add_argument(
        "--database-url",
        default=os.getenv("DATABASE_URL", "sqlite:///./skillanchor.db"),
        help="Database URL (SQLAlchemy compatible)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    engine = make_engine(args.database_url)
    checked = 0
    ok = True
    with get_session(engine) as db:
        store = RatingStoreGateway(db)
        stmt = (
            select(RatingSession)
            .where(RatingSession.rating_session_hash != None)  # noqa: E711
            .order_by(RatingSession.created_at.asc())
        )
        if args.rating_id:
            stmt = stmt.where(RatingSession.id == args.rating_id)
        for row in db.exec(stmt).all():
            rating = RatingSessionRead.model_validate(row)
            checked += 1
            for name, result in hashes_match(rating, store.list_skill_lines(rating.id)).items():
                if not result["ok"]:
                    ok = False
                    print(
                        f"[WARN] {name} mismatch for rating {rating.id}: "
                        f"stored={result['stored']} expected={result['expected']}",
                        file=sys.stderr,
                    )
    if not checked:
        print("No hashed ratings found for verification.")
        return 0
    if ok:
        print(f"Verified {checked} rating(s); stored hashes match")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
