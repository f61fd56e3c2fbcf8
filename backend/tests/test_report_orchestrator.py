from __future__ import annotations

import asyncio
import json

import pytest

from factories import code, seed_report, seed_run, seed_template
from reportgen.core.errors import JobEngineError, NotFoundError, ParseError, ProhibitedError, StorageError
from reportgen.models.models import RunReport
from reportgen.services.input_map import DOCKER_INPUT, NOTEBOOK_TEMPLATE_INPUT
from reportgen.services.job_engine import JobStatus, JobSubmission
from reportgen.services.report_orchestrator import ReportOrchestrator, run_report_to_dict
from reportgen.services.run_data import load_run_snapshot


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: dict[str, bytes] = {}

    def upload(self, data: bytes, destination_path: str) -> str:
        if self.fail:
            raise StorageError("bucket unavailable")
        location = f"gs://fake-bucket/reports/{destination_path}"
        self.uploads[location] = data
        return location

    def download(self, location: str) -> bytes:
        return self.uploads[location]


class FakeJobEngine:
    def __init__(self, fail_on_call: int | None = None):
        self.fail_on_call = fail_on_call
        self.submissions: list[tuple[str, dict]] = []
        self.statuses: dict[str, JobStatus] = {}

    async def submit(self, workflow_source: str, inputs: dict) -> JobSubmission:
        if self.fail_on_call is not None and len(self.submissions) + 1 == self.fail_on_call:
            raise JobEngineError("Job engine returned HTTP 500: boom", status_code=500)
        self.submissions.append((workflow_source, inputs))
        return JobSubmission(job_id=f"job-{len(self.submissions)}", status="Submitted")

    async def get_status(self, job_id: str) -> JobStatus:
        return self.statuses[job_id]


def _orchestrator(storage=None, job_engine=None, **kwargs):
    return ReportOrchestrator(
        storage or FakeStorage(),
        job_engine or FakeJobEngine(),
        docker_location="reportgen/jupyter-report:1.2",
        **kwargs,
    )


def _seed(db, *, report_count=1, config=None):
    template, test = seed_template(db)
    run = seed_run(db, test, name="nightly")
    reports = [
        seed_report(db, name=f"report-{index}", template=template, config=config)
        for index in range(report_count)
    ]
    db.commit()
    return run, reports


def test_create_run_report_submits_and_records(db_session):
    run, (report,) = _seed(db_session, config={"cpu": 4, "memory": "8 GiB", "owner": "qa"})
    storage = FakeStorage()
    engine = FakeJobEngine()

    record = asyncio.run(
        _orchestrator(storage, engine).create_run_report(
            db_session,
            run_id=run.run_id,
            report_id=report.report_id,
            created_by="bob@example.org",
        )
    )

    assert record.status == "submitted"
    assert record.job_id == "job-1"
    assert record.created_by == "bob@example.org"
    assert record.finished_at is None

    location = "gs://fake-bucket/reports/nightly/report-0/report_template.ipynb"
    assert list(storage.uploads) == [location]
    uploaded = json.loads(storage.uploads[location])
    assert uploaded["cells"][0]["source"][0].startswith("report_run_data = ")
    assert uploaded["cells"][-2] == code("print(report_run_data['results'])\n")

    workflow_source, inputs = engine.submissions[0]
    assert "workflow generate_report_file_workflow" in workflow_source
    assert inputs == {
        NOTEBOOK_TEMPLATE_INPUT: location,
        DOCKER_INPUT: "reportgen/jupyter-report:1.2",
        "cpu": 4,
        "memory": "8 GiB",
    }


def test_second_create_for_same_pair_is_prohibited(db_session):
    run, (report,) = _seed(db_session)
    orchestrator = _orchestrator()

    asyncio.run(orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by=None))
    with pytest.raises(ProhibitedError):
        asyncio.run(
            orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by=None)
        )

    assert db_session.query(RunReport).count() == 1
    assert len(orchestrator.job_engine.submissions) == 1


def test_failed_report_can_be_retried_with_delete_failed(db_session):
    run, (report,) = _seed(db_session)
    orchestrator = _orchestrator()
    first = asyncio.run(
        orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by="a")
    )
    first.status = "failed"
    db_session.commit()

    with pytest.raises(ProhibitedError):
        asyncio.run(
            orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by="a")
        )

    retried = asyncio.run(
        orchestrator.create_run_report(
            db_session,
            run_id=run.run_id,
            report_id=report.report_id,
            created_by="a",
            delete_failed=True,
        )
    )

    rows = db_session.query(RunReport).all()
    assert [row.id for row in rows] == [retried.id]
    assert retried.status == "submitted"
    assert retried.job_id == "job-2"


def test_failed_step_keeps_the_failed_record(db_session):
    run, (report,) = _seed(db_session)
    orchestrator = _orchestrator()
    record = asyncio.run(
        orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by="a")
    )
    record.status = "failed"
    db_session.commit()

    broken = _orchestrator(storage=FakeStorage(fail=True))
    with pytest.raises(StorageError) as exc_info:
        asyncio.run(
            broken.create_run_report(
                db_session,
                run_id=run.run_id,
                report_id=report.report_id,
                created_by="a",
                delete_failed=True,
            )
        )

    assert exc_info.value.transient is True
    assert [row.status for row in db_session.query(RunReport).all()] == ["failed"]


def test_unknown_run_or_report_is_not_found(db_session):
    run, (report,) = _seed(db_session)
    orchestrator = _orchestrator()

    with pytest.raises(NotFoundError):
        asyncio.run(orchestrator.create_run_report(db_session, run_id="missing", report_id=report.report_id, created_by=None))
    with pytest.raises(NotFoundError):
        asyncio.run(orchestrator.create_run_report(db_session, run_id=run.run_id, report_id="missing", created_by=None))
    assert db_session.query(RunReport).count() == 0


def test_malformed_report_notebook_is_a_parse_error(db_session):
    template, test = seed_template(db_session)
    run = seed_run(db_session, test)
    report = seed_report(db_session, template=template)
    report.notebook = {"cells": []}
    db_session.commit()
    storage = FakeStorage()

    with pytest.raises(ParseError):
        asyncio.run(
            _orchestrator(storage).create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by=None)
        )
    assert storage.uploads == {}


def test_completed_run_gets_one_submitted_report_per_mapping(db_session):
    run, reports = _seed(db_session, report_count=2)
    orchestrator = _orchestrator()
    snapshot = load_run_snapshot(db_session, run.run_id)

    records = asyncio.run(orchestrator.create_run_reports_for_completed_run(db_session, snapshot))

    assert sorted(record.report_id for record in records) == sorted(report.report_id for report in reports)
    assert [record.status for record in records] == ["submitted", "submitted"]
    assert [record.job_id for record in records] == ["job-1", "job-2"]
    assert {record.created_by for record in records} == {"alice@example.org"}


def test_completed_run_fan_out_stops_at_first_failure(db_session):
    run, _reports = _seed(db_session, report_count=3)
    orchestrator = _orchestrator(job_engine=FakeJobEngine(fail_on_call=2))
    snapshot = load_run_snapshot(db_session, run.run_id)

    with pytest.raises(JobEngineError):
        asyncio.run(orchestrator.create_run_reports_for_completed_run(db_session, snapshot))

    rows = db_session.query(RunReport).all()
    assert [row.job_id for row in rows] == ["job-1"]
    assert len(orchestrator.job_engine.submissions) == 1


def test_refresh_maps_engine_status_and_stores_outputs(db_session):
    run, (report,) = _seed(db_session)
    engine = FakeJobEngine()
    orchestrator = _orchestrator(job_engine=engine)
    asyncio.run(orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by="a"))

    engine.statuses["job-1"] = JobStatus(job_id="job-1", status="Running")
    running = asyncio.run(orchestrator.refresh_run_report(db_session, run_id=run.run_id, report_id=report.report_id))
    assert running.status == "running"
    assert running.finished_at is None

    outputs = {"generate_report_file_workflow.html_report": "gs://exec/report.html"}
    engine.statuses["job-1"] = JobStatus(job_id="job-1", status="Succeeded", outputs=outputs)
    done = asyncio.run(orchestrator.refresh_run_report(db_session, run_id=run.run_id, report_id=report.report_id))
    assert done.status == "succeeded"
    assert done.results == outputs
    assert done.finished_at is not None
    assert run_report_to_dict(done)["finished_at"] is not None


def test_refresh_rejects_unknown_engine_status(db_session):
    run, (report,) = _seed(db_session)
    engine = FakeJobEngine()
    orchestrator = _orchestrator(job_engine=engine)
    asyncio.run(orchestrator.create_run_report(db_session, run_id=run.run_id, report_id=report.report_id, created_by="a"))
    engine.statuses["job-1"] = JobStatus(job_id="job-1", status="Exploded")

    with pytest.raises(JobEngineError, match="unknown status"):
        asyncio.run(orchestrator.refresh_run_report(db_session, run_id=run.run_id, report_id=report.report_id))


def test_refresh_for_run_covers_each_report(db_session):
    run, reports = _seed(db_session, report_count=2)
    engine = FakeJobEngine()
    orchestrator = _orchestrator(job_engine=engine)
    asyncio.run(orchestrator.create_run_reports_for_completed_run(db_session, load_run_snapshot(db_session, run.run_id)))
    engine.statuses["job-1"] = JobStatus(job_id="job-1", status="Failed")
    engine.statuses["job-2"] = JobStatus(job_id="job-2", status="On Hold")

    records = asyncio.run(orchestrator.refresh_run_reports_for_run(db_session, run_id=run.run_id))

    assert sorted(record.status for record in records) == ["failed", "waiting"]


class OverlapTrackingJobEngine(FakeJobEngine):
    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.max_in_flight = 0

    async def submit(self, workflow_source: str, inputs: dict) -> JobSubmission:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            return await super().submit(workflow_source, inputs)
        finally:
            self.in_flight -= 1


def test_completed_run_mappings_are_submitted_one_at_a_time(db_session):
    run, _reports = _seed(db_session, report_count=3)
    engine = OverlapTrackingJobEngine()
    orchestrator = _orchestrator(job_engine=engine)

    records = asyncio.run(
        orchestrator.create_run_reports_for_completed_run(db_session, load_run_snapshot(db_session, run.run_id))
    )

    assert len(records) == 3
    assert engine.max_in_flight == 1
