"""Reconciliation ledger: timestamp-based mark and sweep.

Every record a run processes is stamped with that run's single logical
timestamp. Anything whose stamp differs afterwards was not in the snapshot
and is a removal candidate. Files are never diffed.

Duplicate rows for the same key are a known data-hygiene hazard (an old
double insert). They are collapsed whenever they are met: the most
recently touched row survives and older rows are deleted without ever being
treated as removals.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy import and_, func, or_
from sqlmodel import Session, SQLModel, select

from sf.ledger.models import LedgerEntry, MembershipEntry, MembershipMode, SyncRun

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

EntryT = TypeVar("EntryT", LedgerEntry, MembershipEntry)


def next_run_stamp(session: Session) -> datetime:
    """Pick the stamp for a new run.

    Stamps are timezone-aware UTC and strictly increase across runs, even if
    the clock steps backwards.
    """
    stamp = datetime.now(UTC)
    last = session.exec(select(func.max(SyncRun.stamp))).one()
    if last is not None and stamp <= last:
        stamp = last + timedelta(microseconds=1)
    return stamp


class ReconciliationLedger:
    """Stamps processed records and pages through stale ones.

    Args:
        session: Open session; the caller commits.
        stamp: The current run's stamp.
        page_size: Default page size for sweeps.
    """

    def __init__(self, session: Session, stamp: datetime, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.session = session
        self.stamp_time = stamp
        self.page_size = page_size
        self._retired: list[SQLModel] = []

    # --- Marking ---

    def _touch(self, rows: list[EntryT], **values: Any) -> EntryT | None:
        """Restamp the newest row and delete the rest."""
        if not rows:
            return None
        keep, *duplicates = rows
        for duplicate in duplicates:
            self.session.delete(duplicate)
        if duplicates:
            logger.debug(f"Collapsed {len(duplicates)} duplicate ledger row(s) into {keep.id}")
        for name, value in values.items():
            setattr(keep, name, value)
        keep.input_time = self.stamp_time
        self.session.add(keep)
        return keep

    def stamp(self, kind: str, eid: str, parent_eid: str | None = None) -> LedgerEntry:
        """Record that ``eid`` of ``kind`` was present in this run's snapshot."""
        rows = list(
            self.session.exec(
                select(LedgerEntry)
                .where(LedgerEntry.kind == kind)
                .where(LedgerEntry.eid == eid)
                .order_by(LedgerEntry.input_time.desc(), LedgerEntry.id.desc())  # type: ignore[union-attr]
            ).all()
        )
        entry = self._touch(rows, parent_eid=parent_eid)
        if entry is None:
            entry = LedgerEntry(
                kind=kind, eid=eid, parent_eid=parent_eid, input_time=self.stamp_time
            )
            self.session.add(entry)
        return entry

    def stamp_membership(
        self,
        mode: MembershipMode | str,
        user_eid: str,
        container_eid: str,
        role: str | None = None,
    ) -> MembershipEntry:
        """Record that a membership was present in this run's snapshot."""
        mode = MembershipMode(mode)
        rows = list(
            self.session.exec(
                select(MembershipEntry)
                .where(MembershipEntry.mode == mode)
                .where(MembershipEntry.user_eid == user_eid)
                .where(MembershipEntry.container_eid == container_eid)
                .order_by(MembershipEntry.input_time.desc(), MembershipEntry.id.desc())  # type: ignore[union-attr]
            ).all()
        )
        entry = self._touch(rows, role=role)
        if entry is None:
            entry = MembershipEntry(
                mode=mode,
                user_eid=user_eid,
                container_eid=container_eid,
                role=role,
                input_time=self.stamp_time,
            )
            self.session.add(entry)
        return entry

    # --- Sweeping ---

    def _page_stale(
        self,
        stmt: Any,
        superseded: Callable[[EntryT], bool],
        page_size: int | None,
    ) -> Iterator[EntryT]:
        """Yield stale rows page by page.

        Rows are never deleted while paging (see ``retire``), so a plain
        offset walk over id order is stable. The loop ends on the first
        short or empty page.
        """
        page_size = page_size or self.page_size
        offset = 0
        while True:
            page = list(self.session.exec(stmt.offset(offset).limit(page_size)).all())
            for entry in page:
                if superseded(entry):
                    logger.debug(f"Retiring superseded duplicate ledger row {entry.id}")
                    self.retire(entry)
                    continue
                yield entry
            if len(page) < page_size:
                return
            offset += page_size

    def iter_stale(
        self,
        kind: str,
        parents: set[str] | None = None,
        page_size: int | None = None,
    ) -> Iterator[LedgerEntry]:
        """Yield entries of ``kind`` not stamped by this run.

        Args:
            kind: Entity kind.
            parents: If given, only entries whose parent is in this set.
            page_size: Rows per page; defaults to the ledger's page size.
        """
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.kind == kind)
            .where(LedgerEntry.input_time != self.stamp_time)
            .order_by(LedgerEntry.id)
        )
        if parents is not None:
            stmt = stmt.where(LedgerEntry.parent_eid.in_(parents))  # type: ignore[union-attr]

        def superseded(entry: LedgerEntry) -> bool:
            newer = (
                select(LedgerEntry.id)
                .where(LedgerEntry.kind == entry.kind)
                .where(LedgerEntry.eid == entry.eid)
                .where(LedgerEntry.id != entry.id)
                .where(
                    or_(
                        LedgerEntry.input_time > entry.input_time,
                        and_(
                            LedgerEntry.input_time == entry.input_time,
                            LedgerEntry.id > entry.id,  # type: ignore[operator]
                        ),
                    )
                )
            )
            return self.session.exec(newer).first() is not None

        yield from self._page_stale(stmt, superseded, page_size)

    def iter_stale_memberships(
        self,
        mode: MembershipMode | str,
        containers: set[str] | None = None,
        page_size: int | None = None,
    ) -> Iterator[MembershipEntry]:
        """Yield memberships of ``mode`` not stamped by this run."""
        mode = MembershipMode(mode)
        stmt = (
            select(MembershipEntry)
            .where(MembershipEntry.mode == mode)
            .where(MembershipEntry.input_time != self.stamp_time)
            .order_by(MembershipEntry.id)
        )
        if containers is not None:
            stmt = stmt.where(MembershipEntry.container_eid.in_(containers))  # type: ignore[attr-defined]

        def superseded(entry: MembershipEntry) -> bool:
            newer = (
                select(MembershipEntry.id)
                .where(MembershipEntry.mode == entry.mode)
                .where(MembershipEntry.user_eid == entry.user_eid)
                .where(MembershipEntry.container_eid == entry.container_eid)
                .where(MembershipEntry.id != entry.id)
                .where(
                    or_(
                        MembershipEntry.input_time > entry.input_time,
                        and_(
                            MembershipEntry.input_time == entry.input_time,
                            MembershipEntry.id > entry.id,  # type: ignore[operator]
                        ),
                    )
                )
            )
            return self.session.exec(newer).first() is not None

        yield from self._page_stale(stmt, superseded, page_size)

    # --- Retirement ---

    def retire(self, entry: SQLModel) -> None:
        """Queue a swept entry for deletion once the sweep is over."""
        self._retired.append(entry)

    def purge_retired(self) -> int:
        """Delete queued entries.

        Returns:
            Number of rows deleted.
        """
        count = len(self._retired)
        for entry in self._retired:
            self.session.delete(entry)
        self._retired.clear()
        if count:
            self.session.flush()
        return count

    def discard_retired(self) -> None:
        """Forget queued entries (after a rollback)."""
        self._retired.clear()
