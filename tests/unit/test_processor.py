"""Tests for the generic entity processor lifecycle.

The directories are mocked; the ledger is real so stamping and sweeping
run against a migrated database.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlmodel import Session, select

from sf.config.settings import Settings
from sf.directory.base import IdNotFoundError
from sf.ledger.ledger import ReconciliationLedger
from sf.ledger.models import LedgerEntry
from sf.ledger.runlog import RunLog
from sf.ledger.store import get_session, reset_engine, run_migrations
from sf.sync.filters import DependencyFilter
from sf.sync.kinds.base import KindContext
from sf.sync.kinds.courses import AcademicSessionKind, CourseOfferingKind
from sf.sync.processor import EntityProcessor
from sf.sync.state import ProcessorState, RunState, StageOutcome, SyncPolicy, ValidSet

EARLIER = datetime(2026, 9, 1, 8, 0, 0, tzinfo=UTC)
NOW = datetime(2026, 9, 2, 8, 0, 0, tzinfo=UTC)

SESSION_LINES = [
    "FALL2026,Fall 2026,Fall term,2026-08-20,2026-12-15",
    "SPR2027,Spring 2027,Spring term,2027-01-10,2027-05-10",
]


@pytest.fixture
def session(tmp_path: Path) -> Generator[Session]:
    """Create a temporary database with migrations applied and open a session."""
    db_path = tmp_path / "test_processor.db"
    run_migrations(db_path, backup=False)
    with get_session(db_path) as session:
        yield session
    reset_engine()


@pytest.fixture
def batch_dir(tmp_path: Path) -> Path:
    path = tmp_path / "sf-batch-1"
    path.mkdir()
    return path


def build_processor(
    session: Session,
    batch_dir: Path,
    kind=None,
    policy: SyncPolicy | None = None,
    settings: Settings | None = None,
) -> EntityProcessor:
    policy = policy or SyncPolicy()
    settings = settings or Settings(db_path=batch_dir.parent / "unused.db")
    directory = MagicMock()
    directory.upsert_session.return_value = "new"
    directory.upsert_course_offering.return_value = "new"
    ctx = KindContext(
        directory=directory,
        identity=MagicMock(),
        ledger=ReconciliationLedger(session, NOW, settings.page_size),
        settings=settings,
        policy=policy,
    )
    state = RunState(run_id="1:1", stamp=NOW, policy=policy, batch_dir=batch_dir)
    processor = EntityProcessor(
        kind or AcademicSessionKind(), ctx, state, DependencyFilter(state), RunLog("1:1")
    )
    processor.prepare()
    return processor


def write_lines(batch_dir: Path, filename: str, lines: list[str]) -> None:
    (batch_dir / filename).write_text("\n".join(lines) + "\n", encoding="utf-8")


class TestIngest:
    """Tests for reading and applying lines."""

    def test_adds_counted_and_stamped(self, session: Session, batch_dir: Path) -> None:
        """Every good line is upserted, counted and stamped with the run's stamp."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)

        outcome = processor.ingest()

        assert outcome is StageOutcome.COMPLETED
        assert processor.stats.lines == 2
        assert processor.stats.adds == 2
        assert processor.read_all_lines is True
        stamped = session.exec(select(LedgerEntry)).all()
        assert {(e.eid, e.input_time) for e in stamped} == {("FALL2026", NOW), ("SPR2027", NOW)}

    def test_update_and_unchanged(self, session: Session, batch_dir: Path) -> None:
        """Only 'updated' counts as an update; 'unchanged' counts as nothing."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)
        processor.ctx.directory.upsert_session.side_effect = ["updated", "unchanged"]

        processor.ingest()

        assert (processor.stats.adds, processor.stats.updates) == (0, 1)

    def test_missing_file_is_zero_lines(self, session: Session, batch_dir: Path) -> None:
        """A kind without a file in the batch reads nothing and cannot sweep."""
        processor = build_processor(session, batch_dir)

        assert processor.ingest() is StageOutcome.COMPLETED
        assert processor.stats.lines == 0
        assert processor.read_all_lines is False
        assert processor.reconcile() is StageOutcome.SKIPPED

    def test_validation_errors_skip_line(self, session: Session, batch_dir: Path) -> None:
        """Short lines and bad dates are counted as errors and not written."""
        lines = SESSION_LINES + ["SHORT,Only two", "BADDATE,Bad,Bad date,2026-13-45,2026-12-15"]
        write_lines(batch_dir, "sessions.csv", lines)
        processor = build_processor(session, batch_dir)

        processor.ingest()

        assert processor.stats.lines == 4
        assert processor.stats.errors == 2
        assert processor.ctx.directory.upsert_session.call_count == 2

    def test_header_and_blank_lines_skipped(self, session: Session, batch_dir: Path) -> None:
        """With has_header the first line is ignored; blank lines never count."""
        lines = ["eid,title,description,start,end", "", SESSION_LINES[0], " , , "]
        write_lines(batch_dir, "sessions.csv", lines)
        settings = Settings(db_path=batch_dir.parent / "unused.db", has_header=True)
        processor = build_processor(session, batch_dir, settings=settings)

        processor.ingest()

        assert processor.stats.lines == 1
        assert processor.stats.errors == 0

    def test_quoted_fields(self, session: Session, batch_dir: Path) -> None:
        """Quoted values may contain the delimiter."""
        line = 'FALL2026,"Fall, 2026",Fall term,2026-08-20,2026-12-15'
        write_lines(batch_dir, "sessions.csv", [line])
        processor = build_processor(session, batch_dir)

        processor.ingest()

        record = processor.ctx.directory.upsert_session.call_args.args[0]
        assert record.title == "Fall, 2026"

    def test_id_not_found_is_line_error(self, session: Session, batch_dir: Path) -> None:
        """A directory IdNotFoundError fails the line only, and nothing is stamped."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES[:1])
        processor = build_processor(session, batch_dir)
        processor.ctx.directory.upsert_session.side_effect = IdNotFoundError("CourseSet", "X")

        outcome = processor.ingest()

        assert outcome is StageOutcome.COMPLETED
        assert processor.stats.errors == 1
        assert session.exec(select(LedgerEntry)).all() == []

    def test_other_errors_escape(self, session: Session, batch_dir: Path) -> None:
        """Anything but a line-level error is left for the orchestrator."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)
        processor.ctx.directory.upsert_session.side_effect = RuntimeError("disk full")

        with pytest.raises(RuntimeError):
            processor.ingest()
        assert processor.read_all_lines is False

    def test_cancellation_stops_reading(self, session: Session, batch_dir: Path) -> None:
        """A stop request is honored before the next line."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)
        processor.state.token.request()

        assert processor.ingest() is StageOutcome.CANCELLED
        assert processor.stats.lines == 0
        processor.ctx.directory.upsert_session.assert_not_called()


class TestDependencyFiltering:
    """Tests for skipping records whose parent is missing from the batch."""

    OFFERING = "BIO-101-F26,{session},Intro Biology,Lecture,open,2026-08-20,2026-12-15"

    def test_unknown_parent_skipped_silently(self, session: Session, batch_dir: Path) -> None:
        """No write, no error and no stamp for an offering under an unseen session."""
        write_lines(batch_dir, "courseOfferings.csv", [self.OFFERING.format(session="FALL2099")])
        policy = SyncPolicy(ignore_missing_sessions=True)
        processor = build_processor(session, batch_dir, CourseOfferingKind(), policy)

        processor.ingest()

        assert processor.stats.lines == 1
        assert processor.stats.errors == 0
        processor.ctx.directory.upsert_course_offering.assert_not_called()
        assert session.exec(select(LedgerEntry)).all() == []

    def test_known_parent_registers_child(self, session: Session, batch_dir: Path) -> None:
        """A processed offering joins the offerings set for later kinds."""
        write_lines(batch_dir, "courseOfferings.csv", [self.OFFERING.format(session="FALL2026")])
        policy = SyncPolicy(ignore_missing_sessions=True)
        processor = build_processor(session, batch_dir, CourseOfferingKind(), policy)
        processor.state.valid_ids[ValidSet.SESSIONS].add("FALL2026")

        processor.ingest()

        assert processor.stats.adds == 1
        assert processor.state.valid_ids[ValidSet.COURSE_OFFERINGS] == {"BIO-101-F26"}

    def test_filter_off_processes_everything(self, session: Session, batch_dir: Path) -> None:
        """With the policy off, parents are not checked."""
        write_lines(batch_dir, "courseOfferings.csv", [self.OFFERING.format(session="FALL2099")])
        processor = build_processor(session, batch_dir, CourseOfferingKind())

        processor.ingest()

        assert processor.stats.adds == 1
        assert processor.state.valid_ids[ValidSet.COURSE_OFFERINGS] == set()

    def test_empty_parent_set_skips_sweep(self, session: Session, batch_dir: Path) -> None:
        """When no parent of this kind is in the batch, nothing is swept."""
        write_lines(batch_dir, "courseOfferings.csv", [self.OFFERING.format(session="FALL2099")])
        session.add(
            LedgerEntry(
                kind="CourseOffering", eid="OLD", parent_eid="FALL2099", input_time=EARLIER
            )
        )
        session.commit()
        policy = SyncPolicy(ignore_missing_sessions=True)
        processor = build_processor(session, batch_dir, CourseOfferingKind(), policy)

        processor.ingest()

        assert processor.reconcile() is StageOutcome.SKIPPED
        processor.ctx.directory.remove_course_offering.assert_not_called()


class TestReconcile:
    """Tests for the removal sweep."""

    def seed(self, session: Session, eids: list[str]) -> None:
        for eid in eids:
            session.add(LedgerEntry(kind="AcademicSession", eid=eid, input_time=EARLIER))
        session.commit()

    def test_removes_unstamped_entries(self, session: Session, batch_dir: Path) -> None:
        """Entries not seen this run are removed and dropped from the ledger."""
        self.seed(session, ["FALL2026", "SPR2027", "BIO101"])
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)

        processor.ingest()
        outcome = processor.reconcile()
        session.commit()

        assert outcome is StageOutcome.COMPLETED
        assert processor.stats.deletes == 1
        processor.ctx.directory.remove_session.assert_called_once_with("BIO101")
        remaining = {e.eid for e in session.exec(select(LedgerEntry)).all()}
        assert remaining == {"FALL2026", "SPR2027"}

    def test_missing_target_not_counted(self, session: Session, batch_dir: Path) -> None:
        """A removal target that is already gone is audited, not counted, and still retired."""
        self.seed(session, ["BIO101"])
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)
        processor.ctx.directory.remove_session.side_effect = IdNotFoundError(
            "AcademicSession", "BIO101"
        )

        processor.ingest()
        processor.reconcile()
        session.commit()

        assert processor.stats.deletes == 0
        assert any("Could not remove BIO101" in log.message for log in processor.audit.pending)
        eids = {e.eid for e in session.exec(select(LedgerEntry)).all()}
        assert "BIO101" not in eids

    def test_sessions_swept_while_missing_sessions_ignored(
        self, session: Session, batch_dir: Path
    ) -> None:
        """Sessions have no parent, so ignoring missing sessions does not spare them."""
        self.seed(session, ["BIO101"])
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(
            session, batch_dir, policy=SyncPolicy(ignore_missing_sessions=True)
        )

        processor.ingest()

        assert processor.reconcile() is StageOutcome.COMPLETED
        processor.ctx.directory.remove_session.assert_called_once_with("BIO101")
        assert processor.stats.deletes == 1

    def test_cancellation_during_sweep(self, session: Session, batch_dir: Path) -> None:
        """A stop request ends the sweep early."""
        self.seed(session, ["A", "B"])
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)

        processor.ingest()
        processor.state.token.request()

        assert processor.reconcile() is StageOutcome.CANCELLED
        processor.ctx.directory.remove_session.assert_not_called()


class TestFinalize:
    """Tests for cleanup and finalize."""

    def test_finalize_publishes_stats(self, session: Session, batch_dir: Path) -> None:
        """Stats reach the run state only when the processor is done."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)
        processor.ingest()

        assert "AcademicSession" not in processor.state.stats
        processor.cleanup()
        stats = processor.finalize()

        assert processor.state.stats["AcademicSession"] is stats
        assert processor.state.current_state is ProcessorState.DONE
        assert stats.seconds >= 0

    def test_cleanup_closes_input(self, session: Session, batch_dir: Path) -> None:
        """The input file is closed even after an escaped error."""
        write_lines(batch_dir, "sessions.csv", SESSION_LINES)
        processor = build_processor(session, batch_dir)
        processor.ctx.directory.upsert_session.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            processor.ingest()
        handle = processor._input
        processor.cleanup()

        assert handle is not None
        assert handle.closed
        assert processor._input is None
