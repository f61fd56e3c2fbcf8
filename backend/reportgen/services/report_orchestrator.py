"""Create run reports: assemble the notebook, upload it and submit it for execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reportgen.core.config import settings
from reportgen.core.errors import JobEngineError, NotFoundError, from_db_error
from reportgen.core.time import isoformat_or_none, now_utc
from reportgen.models.models import (
    REPORT_STATUS_ABORTED,
    REPORT_STATUS_ABORTING,
    REPORT_STATUS_FAILED,
    REPORT_STATUS_RUNNING,
    REPORT_STATUS_SUBMITTED,
    REPORT_STATUS_SUCCEEDED,
    REPORT_STATUS_WAITING,
    REPORT_TERMINAL_STATUSES,
    RunReport,
)
from reportgen.models.notebook import serialize_document
from reportgen.services.generator_workflow import resolve_generator_workflow
from reportgen.services.input_map import build_inputs
from reportgen.services.job_engine import JobEngine, build_job_engine_from_settings
from reportgen.services.notebook_assembler import assemble
from reportgen.services.run_data import (
    RunSnapshot,
    list_mapped_report_ids,
    load_report_template,
    load_run_snapshot,
)
from reportgen.services.run_report_guard import ensure_may_create
from reportgen.services.run_report_records import (
    find_run_report,
    insert_run_report,
    update_run_report_status,
)
from reportgen.services.storage import ReportStorage, build_report_storage_from_settings, report_template_path

logger = logging.getLogger(__name__)

# Cromwell workflow statuses -> run report statuses.
JOB_STATUS_TO_REPORT_STATUS = {
    "Submitted": REPORT_STATUS_SUBMITTED,
    "On Hold": REPORT_STATUS_WAITING,
    "Running": REPORT_STATUS_RUNNING,
    "Aborting": REPORT_STATUS_ABORTING,
    "Succeeded": REPORT_STATUS_SUCCEEDED,
    "Failed": REPORT_STATUS_FAILED,
    "Aborted": REPORT_STATUS_ABORTED,
}


def run_report_to_dict(record: RunReport) -> dict[str, Any]:
    return {
        "id": record.id,
        "run_id": record.run_id,
        "report_id": record.report_id,
        "status": record.status,
        "job_id": record.job_id,
        "results": record.results,
        "created_by": record.created_by,
        "created_at": isoformat_or_none(record.created_at),
        "finished_at": isoformat_or_none(record.finished_at),
    }


class ReportOrchestrator:
    """Drives one run report from template to submitted job.

    Storage and the job engine are injected; tests pass fakes for both.

    One invocation is one task working on one session. Database steps run
    synchronously on the event loop thread between the awaited storage and
    engine calls; run unrelated runs in separate tasks with their own sessions.
    """

    def __init__(
        self,
        storage: ReportStorage,
        job_engine: JobEngine,
        *,
        docker_location: str,
        workflow_url: str | None = None,
        namespace_runtime_attrs: bool = False,
    ) -> None:
        self.storage = storage
        self.job_engine = job_engine
        self.docker_location = docker_location
        self.workflow_url = workflow_url or None
        self.namespace_runtime_attrs = namespace_runtime_attrs

    async def create_run_report(
        self,
        db: Session,
        *,
        run_id: str,
        report_id: str,
        created_by: str | None,
        delete_failed: bool = False,
    ) -> RunReport:
        """Create and submit the run report for (``run_id``, ``report_id``).

        Steps run strictly in order and the first failure aborts the rest.
        Nothing already done is undone: an uploaded notebook stays in storage
        if submission fails. The record is committed with status submitted.
        """
        try:
            ensure_may_create(db, run_id=run_id, report_id=report_id, delete_failed=delete_failed)
            run = load_run_snapshot(db, run_id)
            template = load_report_template(db, report_id)

            document = assemble(template.notebook, run)
            payload = serialize_document(document)
            destination = report_template_path(run.name, template.name)
            template_location = await asyncio.to_thread(self.storage.upload, payload, destination)
            logger.debug(
                "Uploaded report notebook run_id=%s report_id=%s location=%s",
                run_id,
                report_id,
                template_location,
            )

            inputs = build_inputs(
                template_location,
                self.docker_location,
                template.config,
                namespace_runtime_attrs=self.namespace_runtime_attrs,
            )
            workflow_source = await resolve_generator_workflow(self.workflow_url)
            submission = await self.job_engine.submit(workflow_source, inputs)

            record = insert_run_report(
                db,
                run_id=run_id,
                report_id=report_id,
                status=REPORT_STATUS_SUBMITTED,
                job_id=submission.job_id,
                created_by=created_by,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise from_db_error(exc, what="run_report") from exc
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Created run report run_id=%s report_id=%s job_id=%s created_by=%s",
            run_id,
            report_id,
            record.job_id,
            created_by,
        )
        return record

    async def create_run_reports_for_completed_run(self, db: Session, run: RunSnapshot) -> list[RunReport]:
        """Create a run report for every report mapped to the run's template.

        Mappings are processed one at a time. The first failure propagates and
        the remaining mappings are skipped; reports submitted before it stay.
        """
        report_ids = list_mapped_report_ids(db, test_id=run.test_id)
        records: list[RunReport] = []
        for report_id in report_ids:
            logger.debug("Creating mapped run report run_id=%s report_id=%s", run.run_id, report_id)
            record = await self.create_run_report(
                db,
                run_id=run.run_id,
                report_id=report_id,
                created_by=run.created_by,
                delete_failed=False,
            )
            records.append(record)
        logger.info("Created run reports for completed run run_id=%s count=%s", run.run_id, len(records))
        return records

    async def refresh_run_report(self, db: Session, *, run_id: str, report_id: str) -> RunReport:
        """Pull the job engine's status into the run report record."""
        record = find_run_report(db, run_id=run_id, report_id=report_id)
        if record is None:
            raise NotFoundError(f"No run_report found for run_id {run_id} and report_id {report_id}")
        if record.status in REPORT_TERMINAL_STATUSES or not record.job_id:
            return record

        job_status = await self.job_engine.get_status(record.job_id)
        status = JOB_STATUS_TO_REPORT_STATUS.get(job_status.status)
        if status is None:
            raise JobEngineError(f"Job engine reported unknown status {job_status.status!r} for job {record.job_id}")
        if status == record.status:
            return record

        finished_at = now_utc() if status in REPORT_TERMINAL_STATUSES else None
        try:
            update_run_report_status(
                db,
                record,
                status=status,
                results=job_status.outputs if status == REPORT_STATUS_SUCCEEDED else None,
                finished_at=finished_at,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise from_db_error(exc, what="run_report") from exc
        logger.info(
            "Refreshed run report run_id=%s report_id=%s job_id=%s status=%s",
            run_id,
            report_id,
            record.job_id,
            status,
        )
        return record

    async def refresh_run_reports_for_run(self, db: Session, *, run_id: str) -> list[RunReport]:
        try:
            report_ids = [
                row.report_id
                for row in db.query(RunReport.report_id)
                .filter(RunReport.run_id == run_id)
                .distinct()
                .order_by(RunReport.report_id.asc())
                .all()
            ]
        except SQLAlchemyError as exc:
            raise from_db_error(exc, what=f"run_reports for run_id {run_id}") from exc
        return [await self.refresh_run_report(db, run_id=run_id, report_id=report_id) for report_id in report_ids]


def build_orchestrator_from_settings() -> ReportOrchestrator:
    return ReportOrchestrator(
        build_report_storage_from_settings(),
        build_job_engine_from_settings(),
        docker_location=settings.REPORT_DOCKER_LOCATION,
        workflow_url=settings.REPORT_GENERATOR_WDL_URL,
        namespace_runtime_attrs=settings.REPORT_NAMESPACE_RUNTIME_ATTRS,
    )
