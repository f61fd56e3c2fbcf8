"""Guard that keeps at most one live run report per (run, report) pair.

The check here is an early exit. Two concurrent callers can both see no
record; the partial unique index on ``run_reports`` rejects the second insert.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from reportgen.core.errors import ProhibitedError
from reportgen.models.models import REPORT_FAILURE_STATUSES
from reportgen.services.run_report_records import delete_run_report, find_run_report

logger = logging.getLogger(__name__)

STATE_ABSENT = "absent"
STATE_EXISTS_NON_FAILED = "exists_non_failed"
STATE_EXISTS_FAILED = "exists_failed"


def run_report_state(db: Session, *, run_id: str, report_id: str) -> str:
    existing = find_run_report(db, run_id=run_id, report_id=report_id)
    if existing is None:
        return STATE_ABSENT
    if existing.status in REPORT_FAILURE_STATUSES:
        return STATE_EXISTS_FAILED
    return STATE_EXISTS_NON_FAILED


def ensure_may_create(db: Session, *, run_id: str, report_id: str, delete_failed: bool) -> None:
    """Raise ``ProhibitedError`` unless a new run report may be created for the pair.

    A failed record is deleted first when ``delete_failed`` is set; a
    non-failed record always blocks creation.
    """
    state = run_report_state(db, run_id=run_id, report_id=report_id)
    if state == STATE_ABSENT:
        return
    if state == STATE_EXISTS_FAILED and delete_failed:
        deleted = delete_run_report(db, run_id=run_id, report_id=report_id)
        logger.info(
            "Deleted failed run_report before retry run_id=%s report_id=%s deleted=%s",
            run_id,
            report_id,
            deleted,
        )
        return

    logger.warning(
        "Run report creation prohibited run_id=%s report_id=%s state=%s delete_failed=%s",
        run_id,
        report_id,
        state,
        delete_failed,
    )
    raise ProhibitedError(
        f"A run_report record already exists for run_id {run_id} and report_id {report_id}"
    )
