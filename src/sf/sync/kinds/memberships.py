"""Course memberships, section memberships and enrollments.

These kinds are stamped in the membership ledger keyed by
(mode, user, container) instead of by eid.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from sf.directory.base import EnrollmentData, IdNotFoundError, MembershipData
from sf.ledger.models import MembershipEntry, MembershipMode
from sf.sync.kinds.base import EntityKind, KindContext
from sf.sync.parsing import field_at, require
from sf.sync.state import ValidSet

if TYPE_CHECKING:
    from sf.sync.state import SyncPolicy

logger = logging.getLogger(__name__)


class MembershipKind(EntityKind):
    """containerEid, userEid, role, status[, credits, gradingScheme]."""

    mode: ClassVar[MembershipMode]
    min_fields = 4

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> MembershipData:
        container_eid, user_eid, role, status = fields[:4]
        label = f"{user_eid} in {container_eid}"
        require(container_eid, "container eid", label)
        require(user_eid, "user eid", label)
        require(role, "role", label)
        require(status, "status", label)
        return MembershipData(
            container_eid=container_eid,  # type: ignore[arg-type]
            user_eid=user_eid,  # type: ignore[arg-type]
            role=role,  # type: ignore[arg-type]
            status=status,  # type: ignore[arg-type]
            credits=field_at(fields, 4) or ctx.settings.default_credits,
            grading_scheme=field_at(fields, 5) or ctx.settings.default_grading_scheme,
        )

    def container_of(self, record: Any) -> str:
        return record.container_eid

    def role_of(self, record: Any) -> str | None:
        return record.role

    def key(self, record: Any) -> str:
        return f"{self.container_of(record)}|{record.user_eid}"

    def parent_of(self, record: Any) -> str | None:
        return self.container_of(record)

    def stamp(self, record: Any, ctx: KindContext) -> None:
        ctx.ledger.stamp_membership(
            self.mode, record.user_eid, self.container_of(record), self.role_of(record)
        )

    def sweep_enabled(self, policy: SyncPolicy) -> bool:
        return not policy.ignore_membership_removals

    def iter_stale(
        self, ctx: KindContext, parents: set[str] | None, page_size: int
    ) -> Iterator[MembershipEntry]:
        return ctx.ledger.iter_stale_memberships(self.mode, parents, page_size)

    def describe(self, entry: MembershipEntry) -> str:
        return f"{entry.user_eid} in {entry.container_eid}"

    def remove(self, entry: MembershipEntry, ctx: KindContext) -> None:
        ctx.directory.remove_membership(self.mode.value, entry.container_eid, entry.user_eid)


class CourseMembershipKind(MembershipKind):
    name = "CourseMembership"
    filename = "courseMemberships.csv"
    mode = MembershipMode.COURSE
    parent_set = ValidSet.COURSE_OFFERINGS

    def upsert(self, record: MembershipData, ctx: KindContext) -> str:
        return ctx.directory.upsert_membership(self.mode.value, record)


class SectionMembershipKind(MembershipKind):
    """Section memberships also maintain the section's enrollment set.

    Instructors become official instructors of it; students are enrolled in
    it. Removing a membership drops the matching enrollment as well.
    """

    name = "SectionMembership"
    filename = "sectionMemberships.csv"
    mode = MembershipMode.SECTION
    parent_set = ValidSet.SECTIONS

    def upsert(self, record: MembershipData, ctx: KindContext) -> str:
        settings = ctx.settings
        directory = ctx.directory

        es_eid = directory.ensure_section_enrollment_set(
            record.container_eid, settings.default_enrollment_set_category
        )
        status = directory.upsert_membership(self.mode.value, record)

        if record.role == settings.instructor_role:
            directory.add_official_instructor(es_eid, record.user_eid)
        elif record.role == settings.student_role:
            credits = record.credits
            if credits == settings.default_credits:
                credits = directory.get_default_credits(es_eid) or credits
            directory.upsert_enrollment(
                EnrollmentData(
                    enrollment_set_eid=es_eid,
                    user_eid=record.user_eid,
                    status=record.status,
                    credits=credits,
                    grading_scheme=record.grading_scheme,
                )
            )
        return status

    def remove(self, entry: MembershipEntry, ctx: KindContext) -> None:
        super().remove(entry, ctx)
        es_eid = ctx.directory.get_section_enrollment_set(entry.container_eid)
        if es_eid is None:
            return
        try:
            ctx.directory.drop_enrollment(es_eid, entry.user_eid)
        except IdNotFoundError:
            logger.debug(f"No enrollment in {es_eid} for {entry.user_eid} to drop")


class EnrollmentKind(MembershipKind):
    """enrollments.csv: enrollmentSetEid, userEid, status, credits, gradingScheme.

    A swept enrollment is dropped, not deleted.
    """

    name = "Enrollment"
    filename = "enrollments.csv"
    mode = MembershipMode.ENROLLMENT
    min_fields = 5
    parent_set = ValidSet.ENROLLMENT_SETS

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> EnrollmentData:
        es_eid, user_eid, status, credits, grading_scheme = fields[:5]
        label = f"{user_eid} in {es_eid}"
        require(es_eid, "enrollment set eid", label)
        require(user_eid, "user eid", label)
        require(status, "status", label)
        return EnrollmentData(
            enrollment_set_eid=es_eid,  # type: ignore[arg-type]
            user_eid=user_eid,  # type: ignore[arg-type]
            status=status,  # type: ignore[arg-type]
            credits=credits or ctx.settings.default_credits,
            grading_scheme=grading_scheme or ctx.settings.default_grading_scheme,
        )

    def container_of(self, record: EnrollmentData) -> str:
        return record.enrollment_set_eid

    def role_of(self, record: EnrollmentData) -> str | None:
        return None

    def upsert(self, record: EnrollmentData, ctx: KindContext) -> str:
        return ctx.directory.upsert_enrollment(record)

    def remove(self, entry: MembershipEntry, ctx: KindContext) -> None:
        ctx.directory.drop_enrollment(entry.container_eid, entry.user_eid)
