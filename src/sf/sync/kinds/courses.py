"""Sessions, course sets, canonical courses, offerings and enrollment sets."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from sf.directory.base import (
    AcademicSessionData,
    CanonicalCourseData,
    CourseOfferingData,
    CourseSetData,
    EnrollmentSetData,
)
from sf.sync.kinds.base import EntityKind, KindContext
from sf.sync.parsing import field_at, parse_date, require
from sf.sync.state import ValidSet

if TYPE_CHECKING:
    from sf.ledger.models import LedgerEntry


class AcademicSessionKind(EntityKind):
    """sessions.csv: eid, title, description, startDate, endDate."""

    name = "AcademicSession"
    filename = "sessions.csv"
    min_fields = 5
    registers = ValidSet.SESSIONS

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> AcademicSessionData:
        eid, title, description = fields[0], fields[1], fields[2]
        start_date = parse_date(fields[3], ctx.settings.date_format)
        end_date = parse_date(fields[4], ctx.settings.date_format)
        require(eid, "eid", eid)
        require(title, "title", eid)
        require(description, "description", eid)
        require(start_date, "start date", eid)
        require(end_date, "end date", eid)
        return AcademicSessionData(eid, title, description, start_date, end_date)  # type: ignore[arg-type]

    def upsert(self, record: AcademicSessionData, ctx: KindContext) -> str:
        return ctx.directory.upsert_session(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_session(entry.eid)


class CourseSetKind(EntityKind):
    """courseSets.csv: eid, title, description, category, parentEid."""

    name = "CourseSet"
    filename = "courseSets.csv"
    min_fields = 5

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> CourseSetData:
        eid, title, description, category, parent_eid = fields[:5]
        require(eid, "eid", eid)
        require(title, "title", eid)
        require(description, "description", eid)
        return CourseSetData(eid, title, description, category, parent_eid)  # type: ignore[arg-type]

    def upsert(self, record: CourseSetData, ctx: KindContext) -> str:
        return ctx.directory.upsert_course_set(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_course_set(entry.eid)


class CanonicalCourseKind(EntityKind):
    """courses.csv: eid, title, description[, courseSetEid]."""

    name = "CanonicalCourse"
    filename = "courses.csv"
    min_fields = 3

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> CanonicalCourseData:
        eid, title, description = fields[:3]
        require(eid, "eid", eid)
        require(title, "title", eid)
        require(description, "description", eid)
        return CanonicalCourseData(eid, title, description, field_at(fields, 3))  # type: ignore[arg-type]

    def upsert(self, record: CanonicalCourseData, ctx: KindContext) -> str:
        return ctx.directory.upsert_canonical_course(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_canonical_course(entry.eid)


class CourseOfferingKind(EntityKind):
    """courseOfferings.csv: eid, sessionEid, title, description, status,
    startDate, endDate[, canonicalCourseEid, courseSetEid]."""

    name = "CourseOffering"
    filename = "courseOfferings.csv"
    min_fields = 7
    registers = ValidSet.COURSE_OFFERINGS
    parent_set = ValidSet.SESSIONS

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> CourseOfferingData:
        eid, session_eid, title, description, status = fields[:5]
        start_date = parse_date(fields[5], ctx.settings.date_format)
        end_date = parse_date(fields[6], ctx.settings.date_format)
        require(eid, "eid", eid)
        require(session_eid, "session eid", eid)
        require(start_date, "start date", eid)
        require(end_date, "end date", eid)
        return CourseOfferingData(
            eid=eid,  # type: ignore[arg-type]
            session_eid=session_eid,  # type: ignore[arg-type]
            title=title,
            description=description,
            status=status,
            start_date=start_date,  # type: ignore[arg-type]
            end_date=end_date,  # type: ignore[arg-type]
            canonical_course_eid=field_at(fields, 7),
            course_set_eid=field_at(fields, 8),
        )

    def parent_of(self, record: CourseOfferingData) -> str | None:
        return record.session_eid

    def upsert(self, record: CourseOfferingData, ctx: KindContext) -> str:
        return ctx.directory.upsert_course_offering(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_course_offering(entry.eid)


class EnrollmentSetKind(EntityKind):
    """enrollmentSets.csv: eid, title, description, category, courseOfferingEid,
    defaultCredits."""

    name = "EnrollmentSet"
    filename = "enrollmentSets.csv"
    min_fields = 6
    registers = ValidSet.ENROLLMENT_SETS
    parent_set = ValidSet.COURSE_OFFERINGS

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> EnrollmentSetData:
        eid, title, description, category, offering_eid, default_credits = fields[:6]
        require(eid, "eid", eid)
        require(offering_eid, "course offering eid", eid)
        return EnrollmentSetData(
            eid, title, description, category, offering_eid, default_credits  # type: ignore[arg-type]
        )

    def parent_of(self, record: EnrollmentSetData) -> str | None:
        return record.course_offering_eid

    def upsert(self, record: EnrollmentSetData, ctx: KindContext) -> str:
        return ctx.directory.upsert_enrollment_set(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_enrollment_set(entry.eid)
