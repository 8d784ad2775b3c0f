"""initial_schema

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tolerate SQLite files whose tables were created by auto_create_tables.
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("schedules"):
        op.create_table(
            "schedules",
            sa.Column("id", sa.String(), nullable=False),
            sa.Column("profile_id", sa.String(), nullable=False),
            sa.Column("trigger", sa.String(), nullable=False),
            sa.Column("frequency", sa.String(), nullable=True),
            sa.Column("time", sa.String(), nullable=True),
            sa.Column("day_of_week", sa.Integer(), nullable=True),
            sa.Column("day_of_month", sa.Integer(), nullable=True),
            sa.Column("interval_minutes", sa.Integer(), nullable=True),
            sa.Column("idle_minutes", sa.Integer(), nullable=True),
            sa.Column("enabled", sa.Boolean(), nullable=False),
            sa.Column("last_run", sa.DateTime(), nullable=True),
            sa.Column("next_run", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_schedules_profile_id"), "schedules", ["profile_id"], unique=False)
        op.create_index(op.f("ix_schedules_enabled"), "schedules", ["enabled"], unique=False)
        op.create_index(op.f("ix_schedules_next_run"), "schedules", ["next_run"], unique=False)

    if not insp.has_table("execution_logs"):
        op.create_table(
            "execution_logs",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("schedule_id", sa.String(), nullable=False),
            sa.Column("profile_id", sa.String(), nullable=False),
            sa.Column("source", sa.String(), nullable=False),
            sa.Column("started_at", sa.DateTime(), nullable=False),
            sa.Column("finished_at", sa.DateTime(), nullable=False),
            sa.Column("duration_seconds", sa.Float(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("items_cleaned", sa.Integer(), nullable=False),
            sa.Column("space_freed", sa.BigInteger(), nullable=False),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("skip_reason", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            op.f("ix_execution_logs_schedule_id"), "execution_logs", ["schedule_id"], unique=False
        )
        op.create_index(
            op.f("ix_execution_logs_started_at"), "execution_logs", ["started_at"], unique=False
        )
        op.create_index(
            "ix_execution_logs_schedule_started",
            "execution_logs",
            ["schedule_id", "started_at"],
            unique=False,
        )


def downgrade() -> None:
    op.drop_index("ix_execution_logs_schedule_started", table_name="execution_logs")
    op.drop_index(op.f("ix_execution_logs_started_at"), table_name="execution_logs")
    op.drop_index(op.f("ix_execution_logs_schedule_id"), table_name="execution_logs")
    op.drop_table("execution_logs")
    op.drop_index(op.f("ix_schedules_next_run"), table_name="schedules")
    op.drop_index(op.f("ix_schedules_enabled"), table_name="schedules")
    op.drop_index(op.f("ix_schedules_profile_id"), table_name="schedules")
    op.drop_table("schedules")
