"""Course and identity directory tables.

Revision ID: 003
Revises: 002
Create Date: 2026-10-02

Entities reference one another by eid, so there are no foreign keys
between these tables.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _eid_index(table: str) -> None:
    op.create_index(op.f(f"ix_{table}_eid"), table, ["eid"], unique=True)


def upgrade() -> None:
    op.create_table(
        "academic_session",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("academic_session")

    op.create_table(
        "course_set",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("parent_eid", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("course_set")

    op.create_table(
        "canonical_course",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("course_set_eid", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("canonical_course")
    op.create_index(
        op.f("ix_canonical_course_course_set_eid"), "canonical_course", ["course_set_eid"]
    )

    op.create_table(
        "course_offering",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("session_eid", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("canonical_course_eid", sa.String(), nullable=True),
        sa.Column("course_set_eid", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("course_offering")
    op.create_index(op.f("ix_course_offering_session_eid"), "course_offering", ["session_eid"])
    op.create_index(
        op.f("ix_course_offering_course_set_eid"), "course_offering", ["course_set_eid"]
    )

    op.create_table(
        "enrollment_set",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("course_offering_eid", sa.String(), nullable=False),
        sa.Column("default_credits", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("enrollment_set")
    op.create_index(
        op.f("ix_enrollment_set_course_offering_eid"), "enrollment_set", ["course_offering_eid"]
    )

    op.create_table(
        "official_instructor",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("enrollment_set_eid", sa.String(), nullable=False),
        sa.Column("user_eid", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("enrollment_set_eid", "user_eid", name="uq_official_instructor"),
    )
    op.create_index(
        op.f("ix_official_instructor_enrollment_set_eid"),
        "official_instructor",
        ["enrollment_set_eid"],
    )
    op.create_index(op.f("ix_official_instructor_user_eid"), "official_instructor", ["user_eid"])

    op.create_table(
        "section_category",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_section_category_code"), "section_category", ["code"], unique=True)

    op.create_table(
        "section",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("parent_section_eid", sa.String(), nullable=True),
        sa.Column("enrollment_set_eid", sa.String(), nullable=True),
        sa.Column("course_offering_eid", sa.String(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("section")
    op.create_index(op.f("ix_section_enrollment_set_eid"), "section", ["enrollment_set_eid"])
    op.create_index(op.f("ix_section_course_offering_eid"), "section", ["course_offering_eid"])

    op.create_table(
        "meeting",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(), nullable=False, comment="section|location|start|end"),
        sa.Column("section_eid", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("start_time", sa.String(), nullable=True),
        sa.Column("end_time", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_meeting_key"), "meeting", ["key"], unique=True)
    op.create_index(op.f("ix_meeting_section_eid"), "meeting", ["section_eid"])

    op.create_table(
        "membership",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("container_eid", sa.String(), nullable=False),
        sa.Column("user_eid", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("credits", sa.String(), nullable=True),
        sa.Column("grading_scheme", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("mode", "container_eid", "user_eid", name="uq_membership"),
    )
    for column in ("mode", "container_eid", "user_eid"):
        op.create_index(op.f(f"ix_membership_{column}"), "membership", [column])

    op.create_table(
        "enrollment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("enrollment_set_eid", sa.String(), nullable=False),
        sa.Column("user_eid", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("credits", sa.String(), nullable=True),
        sa.Column("grading_scheme", sa.String(), nullable=True),
        sa.Column("dropped", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("enrollment_set_eid", "user_eid", name="uq_enrollment"),
    )
    op.create_index(
        op.f("ix_enrollment_enrollment_set_eid"), "enrollment", ["enrollment_set_eid"]
    )
    op.create_index(op.f("ix_enrollment_user_eid"), "enrollment", ["user_eid"])

    op.create_table(
        "person",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eid", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=True),
        sa.Column("properties_json", sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    _eid_index("person")
    op.create_index(op.f("ix_person_user_id"), "person", ["user_id"], unique=True)


def downgrade() -> None:
    for table in (
        "person",
        "enrollment",
        "membership",
        "meeting",
        "section",
        "section_category",
        "official_instructor",
        "enrollment_set",
        "course_offering",
        "canonical_course",
        "course_set",
        "academic_session",
    ):
        op.drop_table(table)
