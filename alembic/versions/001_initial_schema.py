"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Pending nutrition changes
    op.create_table(
        "nutrition_outbox",
        sa.Column("health_connect_id", sa.String(length=255), nullable=False),
        sa.Column("operation", sa.String(length=10), nullable=False),
        sa.Column("created_at_epoch_ms", sa.BigInteger(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("health_connect_id"),
    )
    op.create_index(
        op.f("ix_nutrition_outbox_created_at_epoch_ms"),
        "nutrition_outbox",
        ["created_at_epoch_ms"],
        unique=False,
    )

    op.create_table(
        "sync_state",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nutrition_changes_token", sa.Text(), nullable=True),
        sa.Column("last_hourly_run_at", sa.BigInteger(), nullable=True),
        sa.Column("last_push_run_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_in", sa.Integer(), nullable=True),
        sa.Column("obtained_at", sa.BigInteger(), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("auth_provider", sa.String(length=32), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "preferences",
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("key"),
    )

    # Recurring and one-shot background jobs
    op.create_table(
        "scheduled_jobs",
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("worker", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("interval_seconds", sa.Float(), nullable=True),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("next_run_at", sa.DateTime(), nullable=False),
        sa.Column("run_attempt", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_result", sa.String(length=20), nullable=True),
        sa.Column("last_run_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("name"),
    )
    op.create_index(op.f("ix_scheduled_jobs_next_run_at"), "scheduled_jobs", ["next_run_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_scheduled_jobs_next_run_at"), table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")
    op.drop_table("preferences")
    op.drop_table("auth_sessions")
    op.drop_table("sync_state")
    op.drop_index(op.f("ix_nutrition_outbox_created_at_epoch_ms"), table_name="nutrition_outbox")
    op.drop_table("nutrition_outbox")
