"""Run history and audit log.

Revision ID: 001
Revises:
Create Date: 2026-10-01

- sync_run: one row per executed sync, including the rendered summary
- sync_log: audit messages raised while a run is processed
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sync_run",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column(
            "stamp",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Ledger stamp shared by every record of the run (UTC)",
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False, comment="running, complete or failed"),
        sa.Column("batch_ok", sa.Boolean(), nullable=False),
        sa.Column("batch_dir", sa.String(), nullable=True),
        sa.Column("summary", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sync_run_run_id"), "sync_run", ["run_id"], unique=False)

    op.create_table(
        "sync_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sync_log_run_id"), "sync_log", ["run_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_sync_log_run_id"), table_name="sync_log")
    op.drop_table("sync_log")
    op.drop_index(op.f("ix_sync_run_run_id"), table_name="sync_run")
    op.drop_table("sync_run")
