"""Persistence of run report lifecycle records."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reportgen.core.errors import ProhibitedError, from_db_error
from reportgen.models.models import REPORT_FAILURE_STATUSES, REPORT_STATUSES, RunReport

logger = logging.getLogger(__name__)


def find_run_report(db: Session, *, run_id: str, report_id: str) -> RunReport | None:
    """Current record for the pair: a non-failed one if present, else the newest failed one."""
    failed_last = case((RunReport.status.in_(REPORT_FAILURE_STATUSES), 1), else_=0)
    try:
        return (
            db.query(RunReport)
            .filter(RunReport.run_id == run_id, RunReport.report_id == report_id)
            .order_by(failed_last.asc(), RunReport.id.desc())
            .first()
        )
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=f"run_report for run_id {run_id} and report_id {report_id}") from exc


def delete_run_report(
    db: Session,
    *,
    run_id: str,
    report_id: str,
    statuses: tuple[str, ...] = REPORT_FAILURE_STATUSES,
) -> int:
    """Delete the pair's records in ``statuses`` (failed ones by default); returns the count."""
    try:
        return (
            db.query(RunReport)
            .filter(
                RunReport.run_id == run_id,
                RunReport.report_id == report_id,
                RunReport.status.in_(statuses),
            )
            .delete(synchronize_session=False)
        )
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=f"run_report for run_id {run_id} and report_id {report_id}") from exc


def insert_run_report(
    db: Session,
    *,
    run_id: str,
    report_id: str,
    status: str,
    job_id: str | None,
    created_by: str | None,
    results: dict[str, Any] | None = None,
) -> RunReport:
    """Insert a record. A second live record for the pair is rejected by the database."""
    if status not in REPORT_STATUSES:
        raise ValueError(f"Unsupported run_report status: {status}")
    record = RunReport(
        run_id=run_id,
        report_id=report_id,
        status=status,
        job_id=job_id,
        results=results,
        created_by=created_by,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "Rejected duplicate run_report insert run_id=%s report_id=%s", run_id, report_id
        )
        raise ProhibitedError(
            f"A run_report record already exists for run_id {run_id} and report_id {report_id}"
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise from_db_error(exc, what="run_report") from exc
    return record


def update_run_report_status(
    db: Session,
    record: RunReport,
    *,
    status: str,
    results: dict[str, Any] | None = None,
    finished_at: datetime | None = None,
) -> RunReport:
    if status not in REPORT_STATUSES:
        raise ValueError(f"Unsupported run_report status: {status}")
    record.status = status
    if results is not None:
        record.results = results
    if finished_at is not None:
        record.finished_at = finished_at
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise from_db_error(exc, what="run_report") from exc
    return record


def has_nonfailed_run_reports(db: Session, *, report_id: str) -> bool:
    """True if any run report generated from ``report_id`` has not failed.

    Such reports pin the report's notebook and config: changing them would
    make existing reports unreproducible.
    """
    try:
        row = (
            db.query(RunReport.id)
            .filter(
                RunReport.report_id == report_id,
                RunReport.status.notin_(REPORT_FAILURE_STATUSES),
            )
            .first()
        )
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=f"run_reports for report_id {report_id}") from exc
    return row is not None
