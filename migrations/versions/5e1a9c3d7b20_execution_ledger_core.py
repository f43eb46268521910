"""execution_ledger_core

Create catalog, execution ledger and traceability tables.

Revision ID: 5e1a9c3d7b20
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e1a9c3d7b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("strategy", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "requirements" not in existing_tables:
        op.create_table(
            "requirements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_requirements_project_id", "requirements", ["project_id"])

    if "milestones" not in existing_tables:
        op.create_table(
            "milestones",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("end_date >= start_date", name="ck_milestones_date_order"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_milestones_project_id", "milestones", ["project_id"])

    if "test_suites" not in existing_tables:
        op.create_table(
            "test_suites",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_suites_project_id", "test_suites", ["project_id"])

    if "test_cases" not in existing_tables:
        op.create_table(
            "test_cases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("suite_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("priority", sa.String(length=2), nullable=False, server_default="P2"),
            sa.Column("pre_condition", sa.Text(), nullable=True),
            sa.Column("post_condition", sa.Text(), nullable=True),
            sa.Column("automation_yaml", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["suite_id"], ["test_suites.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_cases_suite_id", "test_cases", ["suite_id"])

    if "requirement_test_cases" not in existing_tables:
        op.create_table(
            "requirement_test_cases",
            sa.Column("requirement_id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["requirement_id"], ["requirements.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("requirement_id", "test_case_id"),
        )

    if "test_steps" not in existing_tables:
        op.create_table(
            "test_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.Integer(), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("action", sa.Text(), nullable=False, server_default=""),
            sa.Column("expected", sa.Text(), nullable=False, server_default=""),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_case_id", "order", name="uq_test_steps_case_order"),
        )
        op.create_index("ix_test_steps_test_case_id", "test_steps", ["test_case_id"])

    if "test_runs" not in existing_tables:
        op.create_table(
            "test_runs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("environment", sa.String(length=100), nullable=False, server_default="Manual"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_test_runs_created_at", "test_runs", ["created_at"])

    if "test_results" not in existing_tables:
        op.create_table(
            "test_results",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_run_id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="UNTESTED"),
            sa.Column("actual_result", sa.Text(), nullable=True),
            sa.Column("defect_state", sa.String(length=20), nullable=False, server_default="NO_DEFECT"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["test_run_id"], ["test_runs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_run_id", "test_case_id", name="uq_test_results_run_case"),
        )
        op.create_index("ix_test_results_test_run_id", "test_results", ["test_run_id"])
        op.create_index("ix_test_results_test_case_id", "test_results", ["test_case_id"])
        op.create_index("ix_test_results_status", "test_results", ["status"])

    if "defects" not in existing_tables:
        op.create_table(
            "defects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_result_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.Text(), nullable=False),
            sa.Column("severity", sa.String(length=30), nullable=False, server_default="Major"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="OPEN"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("evidence_url", sa.String(length=500), nullable=True),
            sa.Column("auto_created", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["test_result_id"], ["test_results.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_defects_test_result_id", "defects", ["test_result_id"])
        op.create_index("ix_defects_status", "defects", ["status"])


def downgrade():
    for table in (
        "defects", "test_results", "test_runs", "test_steps",
        "requirement_test_cases", "test_cases", "test_suites",
        "milestones", "requirements", "projects",
    ):
        op.drop_table(table)
