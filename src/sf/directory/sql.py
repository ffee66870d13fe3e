"""SQLModel implementation of the course and identity directories.

Both classes write through the caller's session and never commit; the
orchestrator owns transaction boundaries.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlmodel import Session, SQLModel, select

from sf.directory.base import (
    AcademicSessionData,
    CanonicalCourseData,
    CourseOfferingData,
    CourseSetData,
    EnrollmentData,
    EnrollmentSetData,
    IdNotFoundError,
    MeetingData,
    MembershipData,
    PersonData,
    SectionData,
)
from sf.directory.models import (
    AcademicSession,
    CanonicalCourse,
    CourseOffering,
    CourseSet,
    Enrollment,
    EnrollmentSet,
    Meeting,
    Membership,
    OfficialInstructor,
    Person,
    Section,
    SectionCategory,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


def _utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def _hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _upsert_model(
    session: Session,
    model: type[ModelT],
    lookup: dict[str, Any],
    values: dict[str, Any],
) -> tuple[ModelT, str]:
    """Create or update one row, touching only changed columns.

    Args:
        session: Open session.
        model: Table class.
        lookup: Column values identifying the row.
        values: Column values the row should end up with.

    Returns:
        Tuple of (row, status) where status is 'new', 'updated', or 'unchanged'.
    """
    stmt = select(model)
    for column, value in lookup.items():
        stmt = stmt.where(getattr(model, column) == value)
    existing = session.exec(stmt).first()

    if existing is None:
        row = model(**lookup, **values)
        session.add(row)
        return row, "new"

    changed = [column for column, value in values.items() if getattr(existing, column) != value]
    if not changed:
        return existing, "unchanged"

    for column in changed:
        logger.debug(
            f"{model.__name__} {lookup}: {column} "
            f"'{getattr(existing, column)}' -> '{values[column]}'"
        )
        setattr(existing, column, values[column])
    if hasattr(existing, "updated_at"):
        existing.updated_at = _utcnow()
    session.add(existing)
    return existing, "updated"


class SqlCourseDirectory:
    """Course-management writes against the local database."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get(self, model: type[ModelT], kind: str, **lookup: Any) -> ModelT:
        stmt = select(model)
        for column, value in lookup.items():
            stmt = stmt.where(getattr(model, column) == value)
        row = self.session.exec(stmt).first()
        if row is None:
            raise IdNotFoundError(kind, "/".join(str(v) for v in lookup.values()))
        return row

    def _find(self, model: type[ModelT], eid: str | None) -> ModelT | None:
        if not eid:
            return None
        return self.session.exec(select(model).where(model.eid == eid)).first()  # type: ignore[attr-defined]

    def _delete(self, model: type[ModelT], kind: str, eid: str) -> None:
        self.session.delete(self._get(model, kind, eid=eid))

    # --- Sessions ---

    def upsert_session(self, data: AcademicSessionData) -> str:
        _, status = _upsert_model(
            self.session,
            AcademicSession,
            {"eid": data.eid},
            {
                "title": data.title,
                "description": data.description,
                "start_date": data.start_date,
                "end_date": data.end_date,
                "is_current": True,
            },
        )
        return status

    def remove_session(self, eid: str) -> None:
        academic_session = self._get(AcademicSession, "AcademicSession", eid=eid)
        academic_session.is_current = False
        academic_session.updated_at = _utcnow()
        self.session.add(academic_session)

    # --- Course sets and canonical courses ---

    def upsert_course_set(self, data: CourseSetData) -> str:
        _, status = _upsert_model(
            self.session,
            CourseSet,
            {"eid": data.eid},
            {
                "title": data.title,
                "description": data.description,
                "category": data.category,
                "parent_eid": data.parent_eid,
            },
        )
        return status

    def remove_course_set(self, eid: str) -> None:
        self._delete(CourseSet, "CourseSet", eid)

    def _linked_course_set(self, course_set_eid: str | None, owner: str) -> str | None:
        if course_set_eid is None:
            return None
        if self._find(CourseSet, course_set_eid) is None:
            logger.debug(f"{owner}: course set {course_set_eid} not found, not linking")
            return None
        return course_set_eid

    def upsert_canonical_course(self, data: CanonicalCourseData) -> str:
        _, status = _upsert_model(
            self.session,
            CanonicalCourse,
            {"eid": data.eid},
            {
                "title": data.title,
                "description": data.description,
                "course_set_eid": self._linked_course_set(data.course_set_eid, data.eid),
            },
        )
        return status

    def remove_canonical_course(self, eid: str) -> None:
        self._delete(CanonicalCourse, "CanonicalCourse", eid)

    # --- Offerings, enrollment sets, sections ---

    def upsert_course_offering(self, data: CourseOfferingData) -> str:
        _, status = _upsert_model(
            self.session,
            CourseOffering,
            {"eid": data.eid},
            {
                "session_eid": data.session_eid,
                "title": data.title,
                "description": data.description,
                "status": data.status,
                "start_date": data.start_date,
                "end_date": data.end_date,
                "canonical_course_eid": data.canonical_course_eid,
                "course_set_eid": self._linked_course_set(data.course_set_eid, data.eid),
            },
        )
        return status

    def remove_course_offering(self, eid: str) -> None:
        self._delete(CourseOffering, "CourseOffering", eid)

    def upsert_enrollment_set(self, data: EnrollmentSetData) -> str:
        _, status = _upsert_model(
            self.session,
            EnrollmentSet,
            {"eid": data.eid},
            {
                "title": data.title,
                "description": data.description,
                "category": data.category,
                "course_offering_eid": data.course_offering_eid,
                "default_credits": data.default_credits,
            },
        )
        return status

    def remove_enrollment_set(self, eid: str) -> None:
        self._delete(EnrollmentSet, "EnrollmentSet", eid)

    def upsert_section(self, data: SectionData) -> str:
        enrollment_set_eid = data.enrollment_set_eid
        if enrollment_set_eid is None:
            # Keep an enrollment set attached by a section membership
            existing = self._find(Section, data.eid)
            enrollment_set_eid = existing.enrollment_set_eid if existing else None

        _, status = _upsert_model(
            self.session,
            Section,
            {"eid": data.eid},
            {
                "title": data.title,
                "description": data.description,
                "category": data.category,
                "parent_section_eid": data.parent_section_eid,
                "enrollment_set_eid": enrollment_set_eid,
                "course_offering_eid": data.course_offering_eid,
            },
        )
        return status

    def remove_section(self, eid: str) -> None:
        self._delete(Section, "Section", eid)

    def ensure_section_category(self, code: str, description: str) -> bool:
        """Register a section category code if it is new.

        Returns:
            True if the category was created.
        """
        stmt = select(SectionCategory).where(SectionCategory.code == code)
        if self.session.exec(stmt).first() is not None:
            return False
        self.session.add(SectionCategory(code=code, description=description))
        self.session.flush()
        logger.info(f"Created section category {code} ({description})")
        return True

    def ensure_section_enrollment_set(self, section_eid: str, category: str) -> str:
        """Return the section's enrollment set, creating '<section>_ES' when it has none."""
        section = self._get(Section, "Section", eid=section_eid)
        if section.enrollment_set_eid and self._find(EnrollmentSet, section.enrollment_set_eid):
            return section.enrollment_set_eid

        es_eid = f"{section_eid}_ES"
        if self._find(EnrollmentSet, es_eid) is None:
            self.session.add(
                EnrollmentSet(
                    eid=es_eid,
                    title=section.title,
                    description=section.description,
                    category=category,
                    course_offering_eid=section.course_offering_eid,
                )
            )
            logger.info(f"Created enrollment set {es_eid} for section {section_eid}")
        section.enrollment_set_eid = es_eid
        section.updated_at = _utcnow()
        self.session.add(section)
        self.session.flush()
        return es_eid

    def get_section_enrollment_set(self, section_eid: str) -> str | None:
        section = self._find(Section, section_eid)
        return section.enrollment_set_eid if section else None

    # --- Meetings ---

    def add_meeting(self, data: MeetingData) -> str:
        """Add a meeting unless an identical one exists. Returns 'new' or 'unchanged'."""
        self._get(Section, "Section", eid=data.section_eid)
        if self.session.exec(select(Meeting).where(Meeting.key == data.key)).first():
            return "unchanged"
        self.session.add(
            Meeting(
                key=data.key,
                section_eid=data.section_eid,
                location=data.location,
                notes=data.notes,
                start_time=data.start_time,
                end_time=data.end_time,
            )
        )
        return "new"

    def remove_meeting(self, key: str) -> None:
        self.session.delete(self._get(Meeting, "Meeting", key=key))

    # --- Memberships and enrollments ---

    def _require_container(self, mode: str, container_eid: str) -> None:
        if mode == "section":
            self._get(Section, "Section", eid=container_eid)
        elif self._find(CourseOffering, container_eid) is None and (
            self._find(CourseSet, container_eid) is None
        ):
            raise IdNotFoundError("CourseOffering", container_eid)

    def upsert_membership(self, mode: str, data: MembershipData) -> str:
        self._require_container(mode, data.container_eid)
        _, status = _upsert_model(
            self.session,
            Membership,
            {"mode": mode, "container_eid": data.container_eid, "user_eid": data.user_eid},
            {
                "role": data.role,
                "status": data.status,
                "credits": data.credits,
                "grading_scheme": data.grading_scheme,
            },
        )
        return status

    def remove_membership(self, mode: str, container_eid: str, user_eid: str) -> None:
        membership = self._get(
            Membership, "Membership", mode=mode, container_eid=container_eid, user_eid=user_eid
        )
        self.session.delete(membership)

    def add_official_instructor(self, enrollment_set_eid: str, user_eid: str) -> None:
        stmt = (
            select(OfficialInstructor)
            .where(OfficialInstructor.enrollment_set_eid == enrollment_set_eid)
            .where(OfficialInstructor.user_eid == user_eid)
        )
        if self.session.exec(stmt).first() is None:
            self.session.add(
                OfficialInstructor(enrollment_set_eid=enrollment_set_eid, user_eid=user_eid)
            )

    def get_default_credits(self, enrollment_set_eid: str) -> str | None:
        enrollment_set = self._find(EnrollmentSet, enrollment_set_eid)
        return enrollment_set.default_credits if enrollment_set else None

    def upsert_enrollment(self, data: EnrollmentData) -> str:
        self._get(EnrollmentSet, "EnrollmentSet", eid=data.enrollment_set_eid)
        _, status = _upsert_model(
            self.session,
            Enrollment,
            {"enrollment_set_eid": data.enrollment_set_eid, "user_eid": data.user_eid},
            {
                "status": data.status,
                "credits": data.credits,
                "grading_scheme": data.grading_scheme,
                "dropped": False,
            },
        )
        return status

    def drop_enrollment(self, enrollment_set_eid: str, user_eid: str) -> None:
        enrollment = self._get(
            Enrollment,
            "Enrollment",
            enrollment_set_eid=enrollment_set_eid,
            user_eid=user_eid,
        )
        enrollment.status = "dropped"
        enrollment.credits = "0"
        enrollment.dropped = True
        enrollment.updated_at = _utcnow()
        self.session.add(enrollment)


class SqlIdentityDirectory:
    """User writes against the local database."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get(self, eid: str) -> Person:
        person = self.session.exec(select(Person).where(Person.eid == eid)).first()
        if person is None:
            raise IdNotFoundError("Person", eid)
        return person

    def _allocate_user_id(self, preferred_id: str | None, eid: str) -> str:
        if preferred_id:
            taken = self.session.exec(select(Person).where(Person.user_id == preferred_id)).first()
            if taken is None:
                return preferred_id
            logger.warning(
                f"Preferred id {preferred_id} for {eid} is already in use, generating one"
            )
        return uuid.uuid4().hex

    def upsert_person(self, data: PersonData) -> str:
        """Create a person or update only the attributes that changed.

        A property whose value is None is removed from the person.
        """
        person = self.session.exec(select(Person).where(Person.eid == data.eid)).first()

        if person is None:
            properties = {k: v for k, v in data.properties.items() if v is not None}
            self.session.add(
                Person(
                    eid=data.eid,
                    user_id=self._allocate_user_id(data.preferred_id, data.eid),
                    last_name=data.last_name,
                    first_name=data.first_name,
                    email=data.email,
                    password_hash=_hash_password(data.password) if data.password else None,
                    type=data.type,
                    properties_json=json.dumps(properties, sort_keys=True) if properties else None,
                )
            )
            self.session.flush()
            return "new"

        changed = False
        for column in ("last_name", "first_name", "email", "type"):
            value = getattr(data, column)
            if getattr(person, column) != value:
                setattr(person, column, value)
                changed = True

        if data.password:
            password_hash = _hash_password(data.password)
            if person.password_hash != password_hash:
                person.password_hash = password_hash
                changed = True

        properties = person.properties
        for name, value in data.properties.items():
            if value is None:
                changed |= properties.pop(name, None) is not None
            elif properties.get(name) != value:
                properties[name] = value
                changed = True
        if not changed:
            return "unchanged"

        person.properties_json = json.dumps(properties, sort_keys=True) if properties else None
        person.updated_at = _utcnow()
        self.session.add(person)
        return "updated"

    def suspend_person(self, eid: str, suspended_type: str) -> None:
        person = self._get(eid)
        person.type = suspended_type
        person.updated_at = _utcnow()
        self.session.add(person)

    def delete_person(self, eid: str) -> None:
        self.session.delete(self._get(eid))
