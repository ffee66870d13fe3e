"""Capabilities the sync engine needs from the course and identity directories.

The engine only ever talks to these protocols. ``sf.directory.sql`` provides
the SQLModel-backed implementation used by the CLI and tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Protocol


class DirectoryError(Exception):
    """Base exception for directory write failures."""

    pass


class IdNotFoundError(DirectoryError):
    """Raised when an operation targets an eid the directory does not know."""

    def __init__(self, kind: str, eid: str) -> None:
        self.kind = kind
        self.eid = eid
        super().__init__(f"{kind} with eid '{eid}' not found.")


# --- Records parsed from extract lines ---


@dataclass
class AcademicSessionData:
    eid: str
    title: str
    description: str
    start_date: date
    end_date: date


@dataclass
class CourseSetData:
    eid: str
    title: str
    description: str
    category: str | None = None
    parent_eid: str | None = None


@dataclass
class CanonicalCourseData:
    eid: str
    title: str
    description: str | None = None
    course_set_eid: str | None = None


@dataclass
class CourseOfferingData:
    eid: str
    session_eid: str
    title: str | None
    description: str | None
    status: str | None
    start_date: date
    end_date: date
    canonical_course_eid: str | None = None
    course_set_eid: str | None = None


@dataclass
class EnrollmentSetData:
    eid: str
    title: str | None
    description: str | None
    category: str | None
    course_offering_eid: str
    default_credits: str | None = None


@dataclass
class SectionData:
    eid: str
    title: str
    description: str
    category: str
    parent_section_eid: str | None
    enrollment_set_eid: str | None
    course_offering_eid: str


@dataclass
class MeetingData:
    """A section meeting. Start and end are 'HH:MM:SS' strings or both None."""

    section_eid: str
    location: str | None
    notes: str | None
    start_time: str | None = None
    end_time: str | None = None

    @property
    def key(self) -> str:
        return "|".join(
            [self.section_eid, self.location or "", self.start_time or "", self.end_time or ""]
        )


@dataclass
class PersonData:
    eid: str
    last_name: str | None
    first_name: str | None
    email: str | None
    password: str | None
    type: str | None
    properties: dict[str, str | None] = field(default_factory=dict)
    preferred_id: str | None = None


@dataclass
class MembershipData:
    container_eid: str
    user_eid: str
    role: str
    status: str
    credits: str | None = None
    grading_scheme: str | None = None


@dataclass
class EnrollmentData:
    enrollment_set_eid: str
    user_eid: str
    status: str
    credits: str | None = None
    grading_scheme: str | None = None


# --- Capabilities ---


class CourseDirectory(Protocol):
    """Course-management write API.

    Every ``upsert_*`` returns 'new', 'updated' or 'unchanged'. Removal calls
    raise IdNotFoundError when the target is already gone.
    """

    def upsert_session(self, data: AcademicSessionData) -> str: ...

    def remove_session(self, eid: str) -> None: ...

    def upsert_course_set(self, data: CourseSetData) -> str: ...

    def remove_course_set(self, eid: str) -> None: ...

    def upsert_canonical_course(self, data: CanonicalCourseData) -> str: ...

    def remove_canonical_course(self, eid: str) -> None: ...

    def upsert_course_offering(self, data: CourseOfferingData) -> str: ...

    def remove_course_offering(self, eid: str) -> None: ...

    def upsert_enrollment_set(self, data: EnrollmentSetData) -> str: ...

    def remove_enrollment_set(self, eid: str) -> None: ...

    def upsert_section(self, data: SectionData) -> str: ...

    def remove_section(self, eid: str) -> None: ...

    def ensure_section_category(self, code: str, description: str) -> bool: ...

    def ensure_section_enrollment_set(self, section_eid: str, category: str) -> str: ...

    def get_section_enrollment_set(self, section_eid: str) -> str | None: ...

    def add_meeting(self, data: MeetingData) -> str: ...

    def remove_meeting(self, key: str) -> None: ...

    def upsert_membership(self, mode: str, data: MembershipData) -> str: ...

    def remove_membership(self, mode: str, container_eid: str, user_eid: str) -> None: ...

    def add_official_instructor(self, enrollment_set_eid: str, user_eid: str) -> None: ...

    def get_default_credits(self, enrollment_set_eid: str) -> str | None: ...

    def upsert_enrollment(self, data: EnrollmentData) -> str: ...

    def drop_enrollment(self, enrollment_set_eid: str, user_eid: str) -> None: ...


class IdentityDirectory(Protocol):
    """User directory write API."""

    def upsert_person(self, data: PersonData) -> str: ...

    def suspend_person(self, eid: str, suspended_type: str) -> None: ...

    def delete_person(self, eid: str) -> None: ...
