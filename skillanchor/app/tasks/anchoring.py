"""Celery task for scheduled anchoring passes.

Route this task to a queue consumed by a single worker with concurrency 1;
two passes on the same signing account would race on nonces.
"""
from __future__ import annotations

import os

from celery import Celery

from skillanchor.app.config import load_settings
from skillanchor.app.services.relayer import run_relayer

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_BACKEND_URL = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/1")
ANCHORING_INTERVAL_SECONDS = float(os.getenv("ANCHORING_INTERVAL_SECONDS", "300"))

celery_app = Celery("skillanchor", broker=CELERY_BROKER_URL, backend=CELERY_BACKEND_URL)
celery_app.conf.task_routes = {"anchoring.run_pass": {"queue": "anchoring"}}
celery_app.conf.beat_schedule = {
    "anchor-unanchored-ratings": {
        "task": "anchoring.run_pass",
        "schedule": ANCHORING_INTERVAL_SECONDS,
    }
}


@celery_app.task(name="anchoring.run_pass", ignore_result=False)
def run_anchoring_pass() -> dict:
    """Run one anchoring pass and return its report."""
    report = run_relayer(load_settings())
    if report is None:
        return {"locked": True}
    return report.to_dict()
