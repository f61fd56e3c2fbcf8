"""Read-only projections of stored runs and reports used during report generation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reportgen.core.errors import NotFoundError, from_db_error
from reportgen.core.time import ensure_utc
from reportgen.models.models import Report, Run, RunResult, TemplateReport, Test


class RunSnapshot(BaseModel):
    """A finished run as embedded into its reports. Never mutated."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    test_id: str
    name: str
    status: str
    test_input: dict[str, Any] = Field(default_factory=dict)
    eval_input: dict[str, Any] = Field(default_factory=dict)
    results: dict[str, Any] = Field(default_factory=dict)
    test_job_id: str | None = None
    eval_job_id: str | None = None
    created_by: str | None = None
    created_at: datetime
    finished_at: datetime | None = None

    def to_report_data(self) -> dict[str, Any]:
        # Timestamps become ISO strings so the embedded literal needs no imports.
        return self.model_dump(mode="json")


class ReportTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    report_id: str
    name: str
    # Kept raw: validated by the assembler.
    notebook: Any
    config: Any = None


def _query_one(db: Session, query, *, what: str):
    try:
        row = query.first()
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=what) from exc
    if row is None:
        raise NotFoundError(f"No {what} found")
    return row


def load_run_snapshot(db: Session, run_id: str) -> RunSnapshot:
    run = _query_one(db, db.query(Run).filter(Run.run_id == run_id), what=f"run with run_id {run_id}")
    try:
        result_rows = (
            db.query(RunResult)
            .filter(RunResult.run_id == run_id)
            .order_by(RunResult.result_key.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=f"results for run {run_id}") from exc

    return RunSnapshot(
        run_id=str(run.run_id),
        test_id=str(run.test_id),
        name=str(run.name),
        status=str(run.status),
        test_input=dict(run.test_input or {}),
        eval_input=dict(run.eval_input or {}),
        results={row.result_key: row.value for row in result_rows},
        test_job_id=run.test_job_id,
        eval_job_id=run.eval_job_id,
        created_by=run.created_by,
        created_at=ensure_utc(run.created_at),
        finished_at=ensure_utc(run.finished_at),
    )


def load_report_template(db: Session, report_id: str) -> ReportTemplate:
    report = _query_one(
        db,
        db.query(Report).filter(Report.report_id == report_id),
        what=f"report with report_id {report_id}",
    )
    return ReportTemplate(
        report_id=str(report.report_id),
        name=str(report.name),
        notebook=report.notebook,
        config=report.config,
    )


def list_mapped_report_ids(db: Session, *, test_id: str) -> list[str]:
    """Report ids mapped to the template that owns ``test_id``, oldest mapping first."""
    test = _query_one(db, db.query(Test).filter(Test.test_id == test_id), what=f"test with test_id {test_id}")
    try:
        rows = (
            db.query(TemplateReport.report_id)
            .filter(TemplateReport.template_id == test.template_id)
            .order_by(TemplateReport.created_at.asc(), TemplateReport.report_id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise from_db_error(exc, what=f"report mappings for template {test.template_id}") from exc
    return [str(row.report_id) for row in rows]
