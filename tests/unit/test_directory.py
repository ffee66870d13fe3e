"""Tests for the SQLModel course and identity directories."""

from __future__ import annotations

from collections.abc import Generator
from datetime import date
from pathlib import Path

import pytest
from sqlmodel import Session, select

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
    Enrollment,
    EnrollmentSet,
    Person,
    Section,
)
from sf.directory.sql import SqlCourseDirectory, SqlIdentityDirectory
from sf.ledger.store import get_session, reset_engine, run_migrations


@pytest.fixture
def session(tmp_path: Path) -> Generator[Session]:
    """Create a temporary database with migrations applied and open a session."""
    db_path = tmp_path / "test_directory.db"
    run_migrations(db_path, backup=False)
    with get_session(db_path) as session:
        yield session
    reset_engine()


@pytest.fixture
def directory(session: Session) -> SqlCourseDirectory:
    return SqlCourseDirectory(session)


@pytest.fixture
def identity(session: Session) -> SqlIdentityDirectory:
    return SqlIdentityDirectory(session)


def fall_session(title: str = "Fall 2026") -> AcademicSessionData:
    return AcademicSessionData(
        "FALL2026", title, "Fall term", date(2026, 8, 20), date(2026, 12, 15)
    )


def add_offering_and_section(directory: SqlCourseDirectory, es_eid: str | None = None) -> None:
    directory.upsert_course_offering(
        CourseOfferingData(
            eid="BIO-101-F26",
            session_eid="FALL2026",
            title="Intro Biology",
            description="Lecture",
            status="open",
            start_date=date(2026, 8, 20),
            end_date=date(2026, 12, 15),
        )
    )
    directory.upsert_section(
        SectionData(
            eid="BIO-101-F26-001",
            title="Section 001",
            description="Lecture section",
            category="LEC",
            parent_section_eid=None,
            enrollment_set_eid=es_eid,
            course_offering_eid="BIO-101-F26",
        )
    )


class TestAcademicSessions:
    """Tests for session writes."""

    def test_new_unchanged_updated(self, directory: SqlCourseDirectory) -> None:
        """Upserts report what happened to the row."""
        assert directory.upsert_session(fall_session()) == "new"
        assert directory.upsert_session(fall_session()) == "unchanged"
        assert directory.upsert_session(fall_session("Autumn 2026")) == "updated"

    def test_remove_disables(self, directory: SqlCourseDirectory, session: Session) -> None:
        """Removing a session keeps the row but marks it not current."""
        directory.upsert_session(fall_session())
        directory.remove_session("FALL2026")

        row = session.exec(select(AcademicSession)).one()
        assert row.is_current is False

    def test_reappearing_session_is_current_again(self, directory: SqlCourseDirectory) -> None:
        """A disabled session that shows up again is an update."""
        directory.upsert_session(fall_session())
        directory.remove_session("FALL2026")

        assert directory.upsert_session(fall_session()) == "updated"

    def test_remove_unknown(self, directory: SqlCourseDirectory) -> None:
        """Removing an unknown eid raises IdNotFoundError."""
        with pytest.raises(IdNotFoundError, match="NOPE"):
            directory.remove_session("NOPE")


class TestCourses:
    """Tests for course sets and canonical courses."""

    def test_course_set_linked_only_when_known(
        self, directory: SqlCourseDirectory, session: Session
    ) -> None:
        """A canonical course names its course set only if that set exists."""
        directory.upsert_canonical_course(CanonicalCourseData("BIO-101", "Intro", None, "BIO"))
        assert session.exec(select(CanonicalCourse)).one().course_set_eid is None

        directory.upsert_course_set(CourseSetData("BIO", "Biology", "Department"))
        status = directory.upsert_canonical_course(
            CanonicalCourseData("BIO-101", "Intro", None, "BIO")
        )

        assert status == "updated"
        assert session.exec(select(CanonicalCourse)).one().course_set_eid == "BIO"

    def test_remove_course_set(self, directory: SqlCourseDirectory) -> None:
        directory.upsert_course_set(CourseSetData("BIO", "Biology", "Department"))
        directory.remove_course_set("BIO")

        with pytest.raises(IdNotFoundError):
            directory.remove_course_set("BIO")


class TestSections:
    """Tests for sections, categories and enrollment sets."""

    def test_category_registered_once(self, directory: SqlCourseDirectory) -> None:
        assert directory.ensure_section_category("LEC", "Lecture") is True
        assert directory.ensure_section_category("LEC", "Lecture") is False

    def test_section_enrollment_set_created(
        self, directory: SqlCourseDirectory, session: Session
    ) -> None:
        """A section without a set gets '<section>_ES' attached."""
        add_offering_and_section(directory)

        es_eid = directory.ensure_section_enrollment_set("BIO-101-F26-001", "NONE")

        assert es_eid == "BIO-101-F26-001_ES"
        enrollment_set = session.exec(select(EnrollmentSet)).one()
        assert enrollment_set.course_offering_eid == "BIO-101-F26"
        assert directory.get_section_enrollment_set("BIO-101-F26-001") == es_eid

    def test_existing_enrollment_set_reused(self, directory: SqlCourseDirectory) -> None:
        """A section's own enrollment set is returned as is."""
        directory.upsert_enrollment_set(
            EnrollmentSetData("ES-1", "Roster", None, "lecture", "BIO-101-F26", "3")
        )
        add_offering_and_section(directory, es_eid="ES-1")

        assert directory.ensure_section_enrollment_set("BIO-101-F26-001", "NONE") == "ES-1"

    def test_resync_keeps_attached_enrollment_set(
        self, directory: SqlCourseDirectory, session: Session
    ) -> None:
        """Re-upserting a section with no set keeps the one already attached."""
        add_offering_and_section(directory)
        directory.ensure_section_enrollment_set("BIO-101-F26-001", "NONE")

        add_offering_and_section(directory)

        section = session.exec(select(Section)).one()
        assert section.enrollment_set_eid == "BIO-101-F26-001_ES"

    def test_unknown_section(self, directory: SqlCourseDirectory) -> None:
        with pytest.raises(IdNotFoundError):
            directory.ensure_section_enrollment_set("NOPE", "NONE")


class TestMeetings:
    """Tests for section meetings."""

    def test_identical_meeting_not_added_twice(self, directory: SqlCourseDirectory) -> None:
        add_offering_and_section(directory)
        meeting = MeetingData("BIO-101-F26-001", "Room 101", "MWF", "09:00:00", "09:50:00")

        assert directory.add_meeting(meeting) == "new"
        assert directory.add_meeting(meeting) == "unchanged"

    def test_meeting_requires_section(self, directory: SqlCourseDirectory) -> None:
        with pytest.raises(IdNotFoundError):
            directory.add_meeting(MeetingData("NOPE", "Room 1", None, None, None))

    def test_remove_by_key(self, directory: SqlCourseDirectory) -> None:
        add_offering_and_section(directory)
        meeting = MeetingData("BIO-101-F26-001", "Room 101", None, None, None)
        directory.add_meeting(meeting)

        directory.remove_meeting(meeting.key)

        assert directory.add_meeting(meeting) == "new"


class TestMemberships:
    """Tests for memberships and enrollments."""

    def test_membership_requires_container(self, directory: SqlCourseDirectory) -> None:
        data = MembershipData("NOPE", "jdoe", "S", "active")
        with pytest.raises(IdNotFoundError):
            directory.upsert_membership("section", data)
        with pytest.raises(IdNotFoundError):
            directory.upsert_membership("course", data)

    def test_membership_upsert_and_remove(self, directory: SqlCourseDirectory) -> None:
        add_offering_and_section(directory)
        data = MembershipData("BIO-101-F26", "jdoe", "S", "active")

        assert directory.upsert_membership("course", data) == "new"
        assert directory.upsert_membership("course", data) == "unchanged"
        directory.remove_membership("course", "BIO-101-F26", "jdoe")
        with pytest.raises(IdNotFoundError):
            directory.remove_membership("course", "BIO-101-F26", "jdoe")

    def test_drop_enrollment(self, directory: SqlCourseDirectory, session: Session) -> None:
        """Dropping keeps the row with zero credits."""
        directory.upsert_enrollment_set(
            EnrollmentSetData("ES-1", "Roster", None, None, "BIO-101-F26", "3")
        )
        directory.upsert_enrollment(EnrollmentData("ES-1", "jdoe", "enrolled", "3", "Letter Grade"))

        directory.drop_enrollment("ES-1", "jdoe")

        enrollment = session.exec(select(Enrollment)).one()
        assert (enrollment.status, enrollment.credits, enrollment.dropped) == ("dropped", "0", True)
        assert directory.get_default_credits("ES-1") == "3"

    def test_enrollment_requires_set(self, directory: SqlCourseDirectory) -> None:
        with pytest.raises(IdNotFoundError):
            directory.upsert_enrollment(EnrollmentData("NOPE", "jdoe", "enrolled", "3", None))


def person(**changes) -> PersonData:
    values = {
        "eid": "jdoe",
        "last_name": "Doe",
        "first_name": "Jane",
        "email": "jdoe@example.edu",
        "password": "secret",
        "type": "student",
        "properties": {},
        "preferred_id": "1001",
    }
    values.update(changes)
    return PersonData(**values)


class TestPeople:
    """Tests for identity writes."""

    def test_created_with_preferred_id(
        self, identity: SqlIdentityDirectory, session: Session
    ) -> None:
        """The preferred id is used on creation and the password is hashed."""
        assert identity.upsert_person(person()) == "new"

        row = session.exec(select(Person)).one()
        assert row.user_id == "1001"
        assert row.password_hash is not None
        assert row.password_hash != "secret"

    def test_preferred_id_in_use(self, identity: SqlIdentityDirectory, session: Session) -> None:
        """A taken preferred id is replaced by a generated one."""
        identity.upsert_person(person())
        identity.upsert_person(person(eid="jroe"))

        row = session.exec(select(Person).where(Person.eid == "jroe")).one()
        assert row.user_id != "1001"

    def test_only_changes_are_updates(self, identity: SqlIdentityDirectory) -> None:
        identity.upsert_person(person())

        assert identity.upsert_person(person()) == "unchanged"
        # The preferred id only matters on creation
        assert identity.upsert_person(person(preferred_id="9999")) == "unchanged"
        assert identity.upsert_person(person(password="changed")) == "updated"
        assert identity.upsert_person(person(password=None)) == "unchanged"

    def test_properties_set_and_removed(
        self, identity: SqlIdentityDirectory, session: Session
    ) -> None:
        """A property given as None is removed."""
        identity.upsert_person(person(properties={"major": "BIO"}))
        assert identity.upsert_person(person(properties={"major": "BIO"})) == "unchanged"

        assert identity.upsert_person(person(properties={"major": None})) == "updated"
        assert session.exec(select(Person)).one().properties == {}

    def test_suspend_and_delete(self, identity: SqlIdentityDirectory, session: Session) -> None:
        identity.upsert_person(person())

        identity.suspend_person("jdoe", "suspended")
        assert session.exec(select(Person)).one().type == "suspended"

        identity.delete_person("jdoe")
        assert session.exec(select(Person)).all() == []
        with pytest.raises(IdNotFoundError):
            identity.suspend_person("jdoe", "suspended")
