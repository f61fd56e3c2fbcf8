"""add_run_report_tables

Revision ID: 5d0c7a1e9b2f
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5d0c7a1e9b2f"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


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
REPORT_STATUSES = (
    "created",
    "submitted",
    "queued",
    "starting",
    "running",
    "waiting",
    "aborting",
    "succeeded",
    "failed",
    "aborted",
    "expired",
)
LIVE_RUN_REPORT_CLAUSE = "status NOT IN ('failed', 'aborted', 'expired')"


def _quoted(values) -> str:
    return ", ".join(f"'{value}'" for value in values)


def upgrade() -> None:
    op.create_table(
        "templates",
        sa.Column("template_id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "tests",
        sa.Column("test_id", sa.String(length=36), primary_key=True),
        sa.Column("template_id", sa.String(length=36), sa.ForeignKey("templates.template_id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "runs",
        sa.Column("run_id", sa.String(length=36), primary_key=True),
        sa.Column("test_id", sa.String(length=36), sa.ForeignKey("tests.test_id"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="created"),
        sa.Column("test_input", sa.JSON(), nullable=False),
        sa.Column("eval_input", sa.JSON(), nullable=False),
        sa.Column("test_job_id", sa.String(length=100), nullable=True),
        sa.Column("eval_job_id", sa.String(length=100), nullable=True),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(f"status IN ({_quoted(RUN_STATUSES)})", name="valid_run_status"),
    )
    op.create_index("idx_runs_test_id", "runs", ["test_id"])

    op.create_table(
        "run_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("run_id", sa.String(length=36), sa.ForeignKey("runs.run_id", ondelete="CASCADE"), nullable=False),
        sa.Column("result_key", sa.String(length=200), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.UniqueConstraint("run_id", "result_key", name="uq_run_results_run_key"),
    )

    op.create_table(
        "reports",
        sa.Column("report_id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notebook", sa.JSON(), nullable=False),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "template_reports",
        sa.Column("template_id", sa.String(length=36), sa.ForeignKey("templates.template_id"), primary_key=True),
        sa.Column("report_id", sa.String(length=36), sa.ForeignKey("reports.report_id"), primary_key=True),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "run_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("run_id", sa.String(length=36), sa.ForeignKey("runs.run_id"), nullable=False),
        sa.Column("report_id", sa.String(length=36), sa.ForeignKey("reports.report_id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="created"),
        sa.Column("job_id", sa.String(length=100), nullable=True),
        sa.Column("results", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(f"status IN ({_quoted(REPORT_STATUSES)})", name="valid_run_report_status"),
    )
    op.create_index("idx_run_reports_run_report", "run_reports", ["run_id", "report_id"])
    # At most one non-failed record per (run, report); failed records can be retried.
    op.create_index(
        "uq_run_reports_run_report_live",
        "run_reports",
        ["run_id", "report_id"],
        unique=True,
        postgresql_where=sa.text(LIVE_RUN_REPORT_CLAUSE),
        sqlite_where=sa.text(LIVE_RUN_REPORT_CLAUSE),
    )


def downgrade() -> None:
    op.drop_index("uq_run_reports_run_report_live", table_name="run_reports")
    op.drop_index("idx_run_reports_run_report", table_name="run_reports")
    op.drop_table("run_reports")
    op.drop_table("template_reports")
    op.drop_table("reports")
    op.drop_table("run_results")
    op.drop_index("idx_runs_test_id", table_name="runs")
    op.drop_table("runs")
    op.drop_table("tests")
    op.drop_table("templates")
