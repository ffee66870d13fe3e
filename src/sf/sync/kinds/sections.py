"""Sections and section meetings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from sf.directory.base import MeetingData, SectionData
from sf.sync.errors import LineValidationError
from sf.sync.kinds.base import EntityKind, KindContext
from sf.sync.parsing import field_at, parse_time, require
from sf.sync.state import ValidSet

if TYPE_CHECKING:
    from sf.ledger.models import LedgerEntry

logger = logging.getLogger(__name__)


class SectionKind(EntityKind):
    """sections.csv: eid, title, description, category, parentSectionEid,
    enrollmentSetEid, courseOfferingEid.

    A missing category falls back to the configured default, and unknown
    category codes are registered on first use.
    """

    name = "Section"
    filename = "sections.csv"
    min_fields = 7
    registers = ValidSet.SECTIONS
    parent_set = ValidSet.COURSE_OFFERINGS

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> SectionData:
        eid, title, description, category, parent_section, es_eid, offering_eid = fields[:7]
        require(eid, "eid", eid)
        require(title, "title", eid)
        require(description, "description", eid)
        require(offering_eid, "course offering eid", eid)
        return SectionData(
            eid=eid,  # type: ignore[arg-type]
            title=title,  # type: ignore[arg-type]
            description=description,  # type: ignore[arg-type]
            category=category or ctx.settings.default_section_category,
            parent_section_eid=parent_section,
            enrollment_set_eid=es_eid,
            course_offering_eid=offering_eid,  # type: ignore[arg-type]
        )

    def parent_of(self, record: SectionData) -> str | None:
        return record.course_offering_eid

    def upsert(self, record: SectionData, ctx: KindContext) -> str:
        description = ctx.settings.section_category_map.get(record.category, record.category)
        ctx.directory.ensure_section_category(record.category, description)
        return ctx.directory.upsert_section(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_section(entry.eid)


class SectionMeetingKind(EntityKind):
    """sectionMeetings.csv: sectionEid, location, notes[, startTime, endTime].

    Meetings have no eid of their own; they are keyed by section, location
    and times. An existing meeting is never updated, only added or removed.
    """

    name = "SectionMeeting"
    filename = "sectionMeetings.csv"
    min_fields = 3
    parent_set = ValidSet.SECTIONS

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> MeetingData:
        section_eid, location, notes = fields[:3]
        raw_start, raw_end = field_at(fields, 3), field_at(fields, 4)
        require(section_eid, "section eid", section_eid)

        if (raw_start is None) != (raw_end is None):
            raise LineValidationError(
                f"Meeting for section {section_eid} needs both a start and an end time, or neither"
            )
        start_time, end_time = parse_time(raw_start), parse_time(raw_end)
        if raw_start is not None:
            require(start_time, "start time", section_eid)
            require(end_time, "end time", section_eid)

        return MeetingData(section_eid, location, notes, start_time, end_time)  # type: ignore[arg-type]

    def key(self, record: MeetingData) -> str:
        return record.key

    def parent_of(self, record: MeetingData) -> str | None:
        return record.section_eid

    def upsert(self, record: MeetingData, ctx: KindContext) -> str:
        return ctx.directory.add_meeting(record)

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        ctx.directory.remove_meeting(entry.eid)
