"""Reconciliation ledger tables.

Revision ID: 002
Revises: 001
Create Date: 2026-10-01

(kind, eid) and (mode, user_eid, container_eid) are intentionally left
unconstrained: duplicates are collapsed by the ledger when met.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ledger_entry",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("parent_eid", sa.String(), nullable=True),
        sa.Column(
            "input_time",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Stamp of the last run that saw this eid",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("kind", "eid", "parent_eid", "input_time"):
        op.create_index(op.f(f"ix_ledger_entry_{column}"), "ledger_entry", [column])

    op.create_table(
        "membership_entry",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False, comment="course, section or enrollment"),
        sa.Column("user_eid", sa.String(), nullable=False),
        sa.Column("container_eid", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("input_time", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("mode", "user_eid", "container_eid", "input_time"):
        op.create_index(op.f(f"ix_membership_entry_{column}"), "membership_entry", [column])


def downgrade() -> None:
    for column in ("mode", "user_eid", "container_eid", "input_time"):
        op.drop_index(op.f(f"ix_membership_entry_{column}"), table_name="membership_entry")
    op.drop_table("membership_entry")
    for column in ("kind", "eid", "parent_eid", "input_time"):
        op.drop_index(op.f(f"ix_ledger_entry_{column}"), table_name="ledger_entry")
    op.drop_table("ledger_entry")
