"""Fixed-order sync pipeline with single-run exclusivity.

The order of ``DEFAULT_KINDS`` is load-bearing: each kind's dependency
check reads valid-id sets filled by earlier kinds. The last kind is the
run's final action and closes the batch directory.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from sqlmodel import Session

from sf.directory.sql import SqlCourseDirectory, SqlIdentityDirectory
from sf.ledger.ledger import ReconciliationLedger, next_run_stamp
from sf.ledger.models import SyncLog, SyncRun
from sf.ledger.runlog import RunLog
from sf.ledger.store import get_session
from sf.sync.errors import SyncInProgressError
from sf.sync.filters import DependencyFilter
from sf.sync.kinds.base import EntityKind, KindContext
from sf.sync.kinds.courses import (
    AcademicSessionKind,
    CanonicalCourseKind,
    CourseOfferingKind,
    CourseSetKind,
    EnrollmentSetKind,
)
from sf.sync.kinds.memberships import CourseMembershipKind, EnrollmentKind, SectionMembershipKind
from sf.sync.kinds.people import PersonKind
from sf.sync.kinds.sections import SectionKind, SectionMeetingKind
from sf.sync.processor import EntityProcessor
from sf.sync.snapshot import SnapshotManager
from sf.sync.state import (
    ProcessorState,
    RunState,
    RunStatus,
    StageOutcome,
    SyncContext,
    SyncPolicy,
    format_summary,
    new_run_id,
)

if TYPE_CHECKING:
    from sf.config.settings import Settings
    from sf.directory.base import CourseDirectory, IdentityDirectory

logger = logging.getLogger(__name__)

DirectoryFactory = Callable[[Session], "CourseDirectory"]
IdentityFactory = Callable[[Session], "IdentityDirectory"]


def default_kinds() -> list[EntityKind]:
    """Return the pipeline in processing order."""
    return [
        AcademicSessionKind(),
        CourseSetKind(),
        CanonicalCourseKind(),
        CourseOfferingKind(),
        EnrollmentSetKind(),
        SectionKind(),
        SectionMeetingKind(),
        PersonKind(),
        CourseMembershipKind(),
        EnrollmentKind(),
        SectionMembershipKind(),
    ]


class SyncOrchestrator:
    """Drives one sync at a time across every entity kind.

    Args:
        settings: Installation settings (paths, defaults, page size).
        kinds: Pipeline override, mainly for tests. Defaults to ``default_kinds()``.
        directory_factory: Builds the course directory for a run's session.
        identity_factory: Builds the identity directory for a run's session.
    """

    def __init__(
        self,
        settings: Settings,
        kinds: Sequence[EntityKind] | None = None,
        directory_factory: DirectoryFactory = SqlCourseDirectory,
        identity_factory: IdentityFactory = SqlIdentityDirectory,
    ) -> None:
        self.settings = settings
        self.kinds = list(kinds) if kinds is not None else default_kinds()
        self.directory_factory = directory_factory
        self.identity_factory = identity_factory
        self._lock = threading.Lock()
        self._state: RunState | None = None
        self.last_state: RunState | None = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def current_state(self) -> RunState | None:
        return self._state

    def request_stop(self) -> bool:
        """Ask the running sync to stop at its next poll point.

        Returns:
            True if a run was in progress.
        """
        state = self._state
        if state is None:
            return False
        logger.info(f"Sync ({state.run_id}): stop requested")
        state.token.request()
        return True

    def sync(self, context: SyncContext | None = None) -> RunState | None:
        """Run the pipeline over the batch waiting in the intake directory.

        Args:
            context: Job property bag (overrides and run bookkeeping keys).

        Returns:
            The finished run's state, or None when no batch was waiting.

        Raises:
            SyncInProgressError: If another sync is running.
        """
        if not self._lock.acquire(blocking=False):
            running = self._state.run_id if self._state else None
            logger.warning(f"Sync requested while sync {running} is in progress")
            raise SyncInProgressError(running)

        try:
            context = context if context is not None else SyncContext()
            snapshot = SnapshotManager(self.settings.intake_dir)
            if not snapshot.has_batch():
                self._record_no_batch()
                return None
            return self._run(context, snapshot)
        finally:
            self._state = None
            self._lock.release()

    def _record_no_batch(self) -> None:
        message = f"No batch uploaded to {self.settings.intake_dir}, nothing to sync"
        logger.info(message)
        with get_session(self.settings.db_path) as session:
            session.add(SyncLog(source="SyncOrchestrator", message=message))
            session.commit()

    def _run(self, context: SyncContext, snapshot: SnapshotManager) -> RunState:
        settings = self.settings
        policy = SyncPolicy.resolve(settings, context.overrides)

        with get_session(settings.db_path) as session:
            state = RunState(run_id=new_run_id(), stamp=next_run_stamp(session), policy=policy)
            self._state = state
            audit = RunLog(state.run_id)
            snapshot.audit = audit

            run_row = SyncRun(run_id=state.run_id, stamp=state.stamp, started_at=state.started_at)
            session.add(run_row)
            audit.record(
                "SyncOrchestrator",
                f"Sync ({state.run_id}) started: ignoreMissingSessions="
                f"{policy.ignore_missing_sessions}, ignoreMembershipRemovals="
                f"{policy.ignore_membership_removals}, userRemovalMode="
                f"{policy.user_removal_mode.value}",
            )
            audit.flush(session)
            session.commit()

            ledger = ReconciliationLedger(session, state.stamp, settings.page_size)
            ctx = KindContext(
                directory=self.directory_factory(session),
                identity=self.identity_factory(session),
                ledger=ledger,
                settings=settings,
                policy=policy,
            )
            dependency_filter = DependencyFilter(state)

            for index, kind in enumerate(self.kinds):
                state.is_final_action = index == len(self.kinds) - 1
                processor = EntityProcessor(kind, ctx, state, dependency_filter, audit)
                self._handle(processor, session, ledger, snapshot, context, audit)

            state.status = RunStatus.COMPLETE if state.success else RunStatus.FAILED
            state.summary = format_summary(state)
            logger.info(state.summary)
            if not state.success:
                audit.record("SyncOrchestrator", f"Sync ({state.run_id}) failed", logging.ERROR)

            run_row.mark_finished(
                success=state.success,
                batch_ok=state.batch_ok,
                summary=state.summary,
                batch_dir=str(state.batch_dir) if state.batch_dir else None,
            )
            session.add(run_row)
            audit.flush(session)
            session.commit()

        self.last_state = state
        return state

    def _handle(
        self,
        processor: EntityProcessor,
        session: Session,
        ledger: ReconciliationLedger,
        snapshot: SnapshotManager,
        context: SyncContext,
        audit: RunLog,
    ) -> None:
        """Run one processor inside the failure boundary.

        Once the batch is not ok, ingest and reconcile are skipped but
        prepare, cleanup and finalize still run.
        """
        state = processor.state
        name = processor.name
        processor.prepare()
        try:
            if not state.batch_ok:
                audit.record(name, "Skipping: batch is not ok", logging.WARNING)
            elif state.stop_requested:
                state.batch_ok = False
                audit.record(name, "Skipping: stop requested", logging.WARNING)
            else:
                if state.batch_dir is None:
                    state.set_processor_state(name, ProcessorState.MOVE)
                    snapshot.isolate(state, context)
                outcome = processor.ingest()
                if outcome is not StageOutcome.CANCELLED:
                    outcome = processor.reconcile()
                if outcome is StageOutcome.CANCELLED:
                    state.batch_ok = False
                audit.flush(session)
                session.commit()
        except Exception as e:
            state.set_processor_state(name, ProcessorState.FAIL)
            session.rollback()
            ledger.discard_retired()
            state.batch_ok = False
            audit.record(
                name,
                f"Failed to process batch at [{state.batch_dir}] during action [{name}]. "
                f"Skipping remainder of batch: {e}",
                logging.ERROR,
            )
            logger.debug(f"{name} failure traceback", exc_info=True)
            audit.flush(session)
            session.commit()
        finally:
            processor.cleanup()
            processor.finalize()
            if state.is_final_action:
                snapshot.close(state, context)
