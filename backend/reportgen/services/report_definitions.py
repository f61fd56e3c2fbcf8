"""Changes to report definitions (name, description, notebook, config)."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reportgen.core.errors import NotFoundError, ParseError, ProhibitedError, from_db_error
from reportgen.models.models import Report
from reportgen.models.notebook import dump_document, parse_document
from reportgen.services.run_report_records import has_nonfailed_run_reports

logger = logging.getLogger(__name__)


def update_report(
    db: Session,
    report_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    notebook: Any = None,
    config: Any = None,
) -> Report:
    """Apply the given changes; ``None`` leaves a field as it is.

    The notebook and config are what a run report executes, so they are frozen
    once a non-failed run report exists for the report. Name and description
    can always change.
    """
    try:
        report = db.query(Report).filter(Report.report_id == report_id).first()
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=f"report with report_id {report_id}") from exc
    if report is None:
        raise NotFoundError(f"No report with report_id {report_id} found")

    if notebook is not None or config is not None:
        if has_nonfailed_run_reports(db, report_id=report_id):
            logger.warning("Report definition update prohibited report_id=%s", report_id)
            raise ProhibitedError(
                f"Cannot update notebook or config of report {report_id} because a "
                "non-failed run_report exists for it"
            )
        if config is not None and not isinstance(config, Mapping):
            raise ParseError("Failed to parse report config as object")
        if notebook is not None:
            report.notebook = dump_document(parse_document(notebook))
        if config is not None:
            report.config = dict(config)

    if name is not None:
        report.name = name
    if description is not None:
        report.description = description

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise from_db_error(exc, what=f"report with report_id {report_id}") from exc
    logger.info(
        "Updated report report_id=%s notebook=%s config=%s",
        report_id,
        notebook is not None,
        config is not None,
    )
    return report
