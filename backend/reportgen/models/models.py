"""
SQLAlchemy models for pipelines runs and their generated reports.
"""
import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from reportgen.core.database import Base
from reportgen.core.time import now_utc

# Run report lifecycle states.
REPORT_STATUS_CREATED = "created"
REPORT_STATUS_SUBMITTED = "submitted"
REPORT_STATUS_QUEUED = "queued"
REPORT_STATUS_STARTING = "starting"
REPORT_STATUS_RUNNING = "running"
REPORT_STATUS_WAITING = "waiting"
REPORT_STATUS_ABORTING = "aborting"
REPORT_STATUS_SUCCEEDED = "succeeded"
REPORT_STATUS_FAILED = "failed"
REPORT_STATUS_ABORTED = "aborted"
REPORT_STATUS_EXPIRED = "expired"

REPORT_STATUSES = (
    REPORT_STATUS_CREATED,
    REPORT_STATUS_SUBMITTED,
    REPORT_STATUS_QUEUED,
    REPORT_STATUS_STARTING,
    REPORT_STATUS_RUNNING,
    REPORT_STATUS_WAITING,
    REPORT_STATUS_ABORTING,
    REPORT_STATUS_SUCCEEDED,
    REPORT_STATUS_FAILED,
    REPORT_STATUS_ABORTED,
    REPORT_STATUS_EXPIRED,
)
REPORT_FAILURE_STATUSES = (
    REPORT_STATUS_FAILED,
    REPORT_STATUS_ABORTED,
    REPORT_STATUS_EXPIRED,
)
REPORT_TERMINAL_STATUSES = (REPORT_STATUS_SUCCEEDED,) + REPORT_FAILURE_STATUSES

RUN_STATUSES = (
    "created",
    "building",
    "test_submitted",
    "test_running",
    "eval_submitted",
    "eval_running",
    "succeeded",
    "build_failed",
    "test_failed",
    "eval_failed",
    "aborted",
)


def _quoted(values) -> str:
    return ", ".join(f"'{value}'" for value in values)


def _new_id() -> str:
    return str(uuid.uuid4())


_LIVE_RUN_REPORT_CLAUSE = f"status NOT IN ({_quoted(REPORT_FAILURE_STATUSES)})"


class Template(Base):
    """A pipeline template: the pair of workflows every test of it runs."""
    __tablename__ = "templates"

    template_id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now())

    tests = relationship("Test", back_populates="template")
    report_mappings = relationship("TemplateReport", back_populates="template")


class Test(Base):
    """A configured test of a template; runs belong to tests."""
    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    test_id = Column(String(36), primary_key=True, default=_new_id)
    template_id = Column(String(36), ForeignKey("templates.template_id"), nullable=False)
    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now())

    template = relationship("Template", back_populates="tests")
    runs = relationship("Run", back_populates="test")


class Run(Base):
    """One execution of a test: a test stage followed by an eval stage."""
    __tablename__ = "runs"

    run_id = Column(String(36), primary_key=True, default=_new_id)
    test_id = Column(String(36), ForeignKey("tests.test_id"), nullable=False)
    name = Column(String(200), unique=True, nullable=False)
    status = Column(String(20), nullable=False, default="created")
    test_input = Column(JSON, nullable=False, default=dict)
    eval_input = Column(JSON, nullable=False, default=dict)
    test_job_id = Column(String(100), nullable=True)
    eval_job_id = Column(String(100), nullable=True)
    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)

    test = relationship("Test", back_populates="runs")
    results = relationship("RunResult", back_populates="run", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(f"status IN ({_quoted(RUN_STATUSES)})", name="valid_run_status"),
        Index("idx_runs_test_id", "test_id"),
    )


class RunResult(Base):
    """One named output recorded for a run."""
    __tablename__ = "run_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("runs.run_id", ondelete="CASCADE"), nullable=False)
    result_key = Column(String(200), nullable=False)
    # Scalars, gs:// URIs or lists of them.
    value = Column(JSON, nullable=True)

    run = relationship("Run", back_populates="results")

    __table_args__ = (
        UniqueConstraint("run_id", "result_key", name="uq_run_results_run_key"),
    )


class Report(Base):
    """A report definition: a base notebook plus optional runtime config."""
    __tablename__ = "reports"

    report_id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    notebook = Column(JSON, nullable=False)
    config = Column(JSON, nullable=True)
    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now())

    template_mappings = relationship("TemplateReport", back_populates="report")


class TemplateReport(Base):
    """Maps a report to a template: every finished run of the template gets that report."""
    __tablename__ = "template_reports"

    template_id = Column(String(36), ForeignKey("templates.template_id"), primary_key=True)
    report_id = Column(String(36), ForeignKey("reports.report_id"), primary_key=True)
    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now())

    template = relationship("Template", back_populates="report_mappings")
    report = relationship("Report", back_populates="template_mappings")


class RunReport(Base):
    """Lifecycle record for generating one report from one run."""
    __tablename__ = "run_reports"

    # Surrogate key: failed attempts for the same pair may coexist briefly during a retry.
    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("runs.run_id"), nullable=False)
    report_id = Column(String(36), ForeignKey("reports.report_id"), nullable=False)
    status = Column(String(20), nullable=False, default=REPORT_STATUS_CREATED)
    job_id = Column(String(100), nullable=True)
    results = Column(JSON, nullable=True)
    created_by = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(f"status IN ({_quoted(REPORT_STATUSES)})", name="valid_run_report_status"),
        # At most one non-failed record per (run, report).
        Index(
            "uq_run_reports_run_report_live",
            "run_id",
            "report_id",
            unique=True,
            postgresql_where=text(_LIVE_RUN_REPORT_CLAUSE),
            sqlite_where=text(_LIVE_RUN_REPORT_CLAUSE),
        ),
        Index("idx_run_reports_run_report", "run_id", "report_id"),
    )
