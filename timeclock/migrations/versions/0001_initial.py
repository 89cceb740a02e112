"""Initial time tracking schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

time_entry_type = postgresql.ENUM(
    "CLOCK_IN",
    "CLOCK_OUT",
    "BREAK_START",
    "BREAK_END",
    "PROJECT_SWITCH",
    name="time_entry_type",
    create_type=False,
)
time_slot_type = postgresql.ENUM(
    "WORK",
    "BREAK",
    name="time_slot_type",
    create_type=False,
)
schedule_period_type = postgresql.ENUM(
    "REGULAR",
    "INTENSIVE",
    "SPECIAL",
    name="schedule_period_type",
    create_type=False,
)
workday_status = postgresql.ENUM(
    "IN_PROGRESS",
    "COMPLETED",
    "INCOMPLETE",
    name="workday_status",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    time_entry_type.create(bind, checkfirst=True)
    time_slot_type.create(bind, checkfirst=True)
    schedule_period_type.create(bind, checkfirst=True)
    workday_status.create(bind, checkfirst=True)

    op.create_table(
        "schedule_templates",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    op.create_table(
        "schedule_periods",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=False),
        sa.Column("period_type", schedule_period_type, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("valid_from", sa.Date(), nullable=True),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["template_id"], ["schedule_templates.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_schedule_periods_template_id", "schedule_periods", ["template_id"])

    op.create_table(
        "work_day_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("weekday", sa.Integer(), nullable=False),
        sa.Column("is_working_day", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["period_id"], ["schedule_periods.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("period_id", "weekday", name="uq_work_day_patterns_period_weekday"),
    )
    op.create_index("ix_work_day_patterns_period_id", "work_day_patterns", ["period_id"])

    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("pattern_id", sa.Integer(), nullable=False),
        sa.Column("slot_type", time_slot_type, nullable=False),
        sa.Column("start_minutes", sa.Integer(), nullable=False),
        sa.Column("end_minutes", sa.Integer(), nullable=False),
        sa.Column("counts_as_work", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_automatic", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["pattern_id"], ["work_day_patterns.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_time_slots_pattern_id", "time_slots", ["pattern_id"])

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("schedule_template_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["schedule_template_id"], ["schedule_templates.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_employees_schedule_template_id", "employees", ["schedule_template_id"])

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("code", name="uq_projects_code"),
    )

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("entry_type", time_entry_type, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_automatic", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("automatic_break_slot_id", sa.Integer(), nullable=True),
        sa.Column("automatic_break_note", sa.String(length=255), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(length=1000), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["automatic_break_slot_id"], ["time_slots.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_time_entries_employee_id", "time_entries", ["employee_id"])
    op.create_index("ix_time_entries_timestamp", "time_entries", ["timestamp"])
    op.create_index("ix_time_entries_automatic_break_slot_id", "time_entries", ["automatic_break_slot_id"])
    op.create_index(
        "ix_time_entries_employee_active_ts",
        "time_entries",
        ["employee_id", "timestamp"],
        postgresql_where=sa.text("is_cancelled = false"),
    )

    op.create_table(
        "workday_summaries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("clock_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_worked_minutes", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_break_minutes", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_break_minutes", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("expected_minutes", sa.Float(), nullable=True),
        sa.Column("deviation_minutes", sa.Float(), nullable=True),
        sa.Column("status", workday_status, nullable=False),
        sa.Column(
            "resolution_flags",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "work_date", name="uq_workday_summaries_employee_work_date"),
    )
    op.create_index("ix_workday_summaries_employee_id", "workday_summaries", ["employee_id"])


def downgrade() -> None:
    op.drop_index("ix_workday_summaries_employee_id", table_name="workday_summaries")
    op.drop_table("workday_summaries")
    op.drop_index("ix_time_entries_employee_active_ts", table_name="time_entries")
    op.drop_index("ix_time_entries_automatic_break_slot_id", table_name="time_entries")
    op.drop_index("ix_time_entries_timestamp", table_name="time_entries")
    op.drop_index("ix_time_entries_employee_id", table_name="time_entries")
    op.drop_table("time_entries")
    op.drop_table("projects")
    op.drop_index("ix_employees_schedule_template_id", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_time_slots_pattern_id", table_name="time_slots")
    op.drop_table("time_slots")
    op.drop_index("ix_work_day_patterns_period_id", table_name="work_day_patterns")
    op.drop_table("work_day_patterns")
    op.drop_index("ix_schedule_periods_template_id", table_name="schedule_periods")
    op.drop_table("schedule_periods")
    op.drop_table("schedule_templates")

    bind = op.get_bind()
    workday_status.drop(bind, checkfirst=True)
    schedule_period_type.drop(bind, checkfirst=True)
    time_slot_type.drop(bind, checkfirst=True)
    time_entry_type.drop(bind, checkfirst=True)
