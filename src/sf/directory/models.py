"""SQLModel tables backing the local course and identity directory.

Entities reference each other by external identifier (eid) rather than by
row id: the extract files arrive in dependency order but a child may still
name a parent that was never loaded, and that must not fail the write.
"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class AcademicSession(SQLModel, table=True):
    """A term. Sessions are never deleted; a swept session is marked not current."""

    __tablename__ = "academic_session"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    title: str
    description: str
    start_date: date
    end_date: date
    is_current: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CourseSet(SQLModel, table=True):
    __tablename__ = "course_set"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    title: str
    description: str
    category: str | None = Field(default=None)
    parent_eid: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CanonicalCourse(SQLModel, table=True):
    __tablename__ = "canonical_course"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    title: str
    description: str | None = Field(default=None)
    course_set_eid: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CourseOffering(SQLModel, table=True):
    __tablename__ = "course_offering"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    session_eid: str = Field(index=True)
    title: str | None = Field(default=None)
    description: str | None = Field(default=None)
    status: str | None = Field(default=None)
    start_date: date
    end_date: date
    canonical_course_eid: str | None = Field(default=None)
    course_set_eid: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class EnrollmentSet(SQLModel, table=True):
    __tablename__ = "enrollment_set"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    title: str | None = Field(default=None)
    description: str | None = Field(default=None)
    category: str | None = Field(default=None)
    course_offering_eid: str = Field(index=True)
    default_credits: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class OfficialInstructor(SQLModel, table=True):
    """Instructor of record for an enrollment set."""

    __tablename__ = "official_instructor"
    __table_args__ = (
        UniqueConstraint("enrollment_set_eid", "user_eid", name="uq_official_instructor"),
    )

    id: int | None = Field(default=None, primary_key=True)
    enrollment_set_eid: str = Field(index=True)
    user_eid: str = Field(index=True)


class SectionCategory(SQLModel, table=True):
    __tablename__ = "section_category"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(unique=True, index=True)
    description: str


class Section(SQLModel, table=True):
    __tablename__ = "section"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    title: str
    description: str
    category: str
    parent_section_eid: str | None = Field(default=None)
    enrollment_set_eid: str | None = Field(default=None, index=True)
    course_offering_eid: str = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Meeting(SQLModel, table=True):
    """A scheduled meeting of a section, identified by its composite key."""

    __tablename__ = "meeting"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True, description="section|location|start|end")
    section_eid: str = Field(index=True)
    location: str | None = Field(default=None)
    notes: str | None = Field(default=None)
    start_time: str | None = Field(default=None)
    end_time: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)


class Membership(SQLModel, table=True):
    """A user's role in a course set/offering or a section."""

    __tablename__ = "membership"
    __table_args__ = (
        UniqueConstraint("mode", "container_eid", "user_eid", name="uq_membership"),
    )

    id: int | None = Field(default=None, primary_key=True)
    mode: str = Field(index=True)
    container_eid: str = Field(index=True)
    user_eid: str = Field(index=True)
    role: str
    status: str | None = Field(default=None)
    credits: str | None = Field(default=None)
    grading_scheme: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Enrollment(SQLModel, table=True):
    """A user's enrollment in an enrollment set. Dropped enrollments are kept."""

    __tablename__ = "enrollment"
    __table_args__ = (
        UniqueConstraint("enrollment_set_eid", "user_eid", name="uq_enrollment"),
    )

    id: int | None = Field(default=None, primary_key=True)
    enrollment_set_eid: str = Field(index=True)
    user_eid: str = Field(index=True)
    status: str | None = Field(default=None)
    credits: str | None = Field(default=None)
    grading_scheme: str | None = Field(default=None)
    dropped: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Person(SQLModel, table=True):
    """A directory user.

    ``user_id`` is the internal identifier, taken from the extract's
    preferred id on creation and never changed afterwards.
    """

    __tablename__ = "person"

    id: int | None = Field(default=None, primary_key=True)
    eid: str = Field(unique=True, index=True)
    user_id: str = Field(unique=True, index=True)
    last_name: str | None = Field(default=None)
    first_name: str | None = Field(default=None)
    email: str | None = Field(default=None)
    password_hash: str | None = Field(default=None)
    type: str | None = Field(default=None)
    properties_json: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def properties(self) -> dict[str, str]:
        return json.loads(self.properties_json) if self.properties_json else {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "eid": self.eid,
            "user_id": self.user_id,
            "last_name": self.last_name,
            "first_name": self.first_name,
            "email": self.email,
            "type": self.type,
            "properties": self.properties,
        }
