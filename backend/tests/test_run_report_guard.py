from __future__ import annotations

import pytest

from factories import seed_report, seed_run, seed_template
from reportgen.core.errors import ProhibitedError
from reportgen.models.models import RunReport
from reportgen.services.run_report_guard import (
    STATE_ABSENT,
    STATE_EXISTS_FAILED,
    STATE_EXISTS_NON_FAILED,
    ensure_may_create,
    run_report_state,
)
from reportgen.services.run_report_records import (
    delete_run_report,
    find_run_report,
    has_nonfailed_run_reports,
    insert_run_report,
    update_run_report_status,
)


def _seed_pair(db):
    template, test = seed_template(db)
    run = seed_run(db, test)
    report = seed_report(db, template=template)
    db.commit()
    return run.run_id, report.report_id


def _insert(db, run_id, report_id, *, status="submitted", job_id="job-1"):
    record = insert_run_report(
        db,
        run_id=run_id,
        report_id=report_id,
        status=status,
        job_id=job_id,
        created_by="alice@example.org",
    )
    db.commit()
    return record


def test_absent_pair_may_be_created(db_session):
    run_id, report_id = _seed_pair(db_session)
    assert run_report_state(db_session, run_id=run_id, report_id=report_id) == STATE_ABSENT
    ensure_may_create(db_session, run_id=run_id, report_id=report_id, delete_failed=False)


@pytest.mark.parametrize("status", ["submitted", "running", "succeeded"])
@pytest.mark.parametrize("delete_failed", [False, True])
def test_non_failed_record_always_prohibits(db_session, status, delete_failed):
    run_id, report_id = _seed_pair(db_session)
    _insert(db_session, run_id, report_id, status=status)

    assert run_report_state(db_session, run_id=run_id, report_id=report_id) == STATE_EXISTS_NON_FAILED
    with pytest.raises(ProhibitedError, match=f"run_id {run_id} and report_id {report_id}"):
        ensure_may_create(db_session, run_id=run_id, report_id=report_id, delete_failed=delete_failed)
    assert db_session.query(RunReport).count() == 1


def test_failed_record_prohibits_without_delete_failed(db_session):
    run_id, report_id = _seed_pair(db_session)
    _insert(db_session, run_id, report_id, status="failed")

    assert run_report_state(db_session, run_id=run_id, report_id=report_id) == STATE_EXISTS_FAILED
    with pytest.raises(ProhibitedError):
        ensure_may_create(db_session, run_id=run_id, report_id=report_id, delete_failed=False)
    assert db_session.query(RunReport).count() == 1


@pytest.mark.parametrize("status", ["failed", "aborted", "expired"])
def test_failed_record_is_deleted_with_delete_failed(db_session, status):
    run_id, report_id = _seed_pair(db_session)
    _insert(db_session, run_id, report_id, status=status)

    ensure_may_create(db_session, run_id=run_id, report_id=report_id, delete_failed=True)

    assert find_run_report(db_session, run_id=run_id, report_id=report_id) is None


def test_database_rejects_second_live_record_for_a_pair(db_session):
    run_id, report_id = _seed_pair(db_session)
    _insert(db_session, run_id, report_id, job_id="job-1")

    with pytest.raises(ProhibitedError):
        _insert(db_session, run_id, report_id, job_id="job-2")

    rows = db_session.query(RunReport).all()
    assert [row.job_id for row in rows] == ["job-1"]


def test_failed_records_do_not_block_a_live_record(db_session):
    run_id, report_id = _seed_pair(db_session)
    _insert(db_session, run_id, report_id, status="failed", job_id="job-1")
    _insert(db_session, run_id, report_id, status="aborted", job_id="job-2")
    live = _insert(db_session, run_id, report_id, status="submitted", job_id="job-3")

    assert find_run_report(db_session, run_id=run_id, report_id=report_id).id == live.id


def test_delete_only_removes_failed_records_by_default(db_session):
    run_id, report_id = _seed_pair(db_session)
    _insert(db_session, run_id, report_id, status="failed", job_id="job-1")
    _insert(db_session, run_id, report_id, status="running", job_id="job-2")

    assert delete_run_report(db_session, run_id=run_id, report_id=report_id) == 1
    db_session.commit()
    assert [row.job_id for row in db_session.query(RunReport).all()] == ["job-2"]


def test_update_status_and_nonfailed_lookup(db_session):
    run_id, report_id = _seed_pair(db_session)
    record = _insert(db_session, run_id, report_id)
    assert has_nonfailed_run_reports(db_session, report_id=report_id) is True

    update_run_report_status(db_session, record, status="failed")
    db_session.commit()

    assert has_nonfailed_run_reports(db_session, report_id=report_id) is False
    with pytest.raises(ValueError):
        update_run_report_status(db_session, record, status="exploded")
