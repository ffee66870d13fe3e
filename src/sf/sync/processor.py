"""Generic lifecycle for processing one entity kind.

prepare -> ingest -> reconcile -> cleanup -> finalize, implemented once and
driven by an ``EntityKind`` strategy. Line-level problems are counted and
skipped here; anything else escapes to the orchestrator, which treats it as
fatal for the batch.
"""

from __future__ import annotations

import csv
import logging
import time
from typing import IO, TYPE_CHECKING

from sf.directory.base import IdNotFoundError
from sf.sync.errors import LineValidationError
from sf.sync.parsing import normalize_fields
from sf.sync.state import HandlerStats, ProcessorState, StageOutcome

if TYPE_CHECKING:
    from sf.ledger.runlog import RunLog
    from sf.sync.filters import DependencyFilter
    from sf.sync.kinds.base import EntityKind, KindContext
    from sf.sync.state import RunState

logger = logging.getLogger(__name__)


class EntityProcessor:
    """Runs one entity kind through a sync.

    Args:
        kind: Strategy for the entity kind.
        ctx: Directory, ledger and settings the kind writes through.
        state: The current run.
        dependency_filter: Shared parent-presence filter.
        audit: Run log for audited conditions.
    """

    def __init__(
        self,
        kind: EntityKind,
        ctx: KindContext,
        state: RunState,
        dependency_filter: DependencyFilter,
        audit: RunLog,
    ) -> None:
        self.kind = kind
        self.ctx = ctx
        self.state = state
        self.filter = dependency_filter
        self.audit = audit
        self.stats = HandlerStats()
        self.read_all_lines = False
        self._input: IO[str] | None = None

    @property
    def name(self) -> str:
        return self.kind.name

    def _set_state(self, state: ProcessorState) -> None:
        self.state.set_processor_state(self.name, state, self.stats)

    # --- Lifecycle ---

    def prepare(self) -> None:
        """Reset counters and record the start time."""
        self.stats = HandlerStats(start=int(time.time()))
        self.read_all_lines = False
        self._set_state(ProcessorState.START)

    def ingest(self) -> StageOutcome:
        """Read the kind's file and apply every usable line.

        A missing or unreadable file contributes zero lines.
        """
        self._set_state(ProcessorState.READ)
        if self.state.batch_dir is None:
            self.audit.record(self.name, "No batch directory, nothing to read", logging.WARNING)
            return StageOutcome.SKIPPED

        path = self.state.batch_dir / self.kind.filename
        try:
            self._input = open(path, newline="", encoding="utf-8")
        except FileNotFoundError:
            self.audit.record(self.name, f"No {self.kind.filename} in batch, nothing to read")
            return StageOutcome.COMPLETED
        except OSError as e:
            self.audit.record(self.name, f"Could not open {path}: {e}", logging.WARNING)
            return StageOutcome.COMPLETED

        has_header = self.ctx.settings.has_header
        for line_number, row in enumerate(csv.reader(self._input), start=1):
            if self.state.stop_requested:
                self.audit.record(self.name, f"Stop requested at line {line_number}")
                return StageOutcome.CANCELLED
            if has_header and line_number == 1:
                continue
            if not any(value.strip() for value in row):
                continue
            self.stats.lines += 1
            self._handle_line(row, line_number)

        self.read_all_lines = self.stats.lines > 0
        self.audit.record(
            self.name,
            f"Finished reading {self.stats.lines} line(s) from {self.kind.filename} "
            f"with {self.stats.errors} error(s)",
        )
        return StageOutcome.COMPLETED

    def _handle_line(self, row: list[str], line_number: int) -> None:
        fields = normalize_fields(row)
        try:
            record = self.kind.parse(fields, self.ctx)
        except LineValidationError as e:
            self.stats.errors += 1
            self.audit.record(self.name, f"Line {line_number}: {e}", logging.WARNING)
            return

        parent_eid = self.kind.parent_of(record)
        if not self.filter.allows(self.kind.parent_set, parent_eid):
            logger.debug(
                f"{self.name} line {line_number}: skipping {self.kind.key(record)}, "
                f"parent {parent_eid} is not in this batch"
            )
            return

        try:
            status = self.kind.upsert(record, self.ctx)
        except IdNotFoundError as e:
            self.stats.errors += 1
            self.audit.record(self.name, f"Line {line_number}: {e}", logging.WARNING)
            return

        if status == "new":
            self.stats.adds += 1
        elif status == "updated":
            self.stats.updates += 1

        self.kind.stamp(record, self.ctx)
        self.filter.register(self.kind.registers, self.kind.key(record))

    def reconcile(self) -> StageOutcome:
        """Remove whatever the ledger holds for this kind that this run did not stamp."""
        self._set_state(ProcessorState.PROCESS)

        if not self.kind.sweep_enabled(self.state.policy):
            self.audit.record(self.name, "Removal processing is disabled for this run")
            return StageOutcome.SKIPPED

        if not self.read_all_lines:
            self.audit.record(
                self.name,
                "Skipped removal processing: input was empty or only partially processed",
            )
            return StageOutcome.SKIPPED

        parents = self.filter.parents(self.kind.parent_set)
        if parents is not None and not parents:
            self.audit.record(
                self.name,
                f"No valid {self.kind.parent_set.value if self.kind.parent_set else 'parents'} "
                "in this batch, skipping removal processing",
                logging.WARNING,
            )
            return StageOutcome.SKIPPED

        ledger = self.ctx.ledger
        outcome = StageOutcome.COMPLETED
        for entry in self.kind.iter_stale(self.ctx, parents, self.ctx.settings.page_size):
            if self.state.stop_requested:
                self.audit.record(self.name, "Stop requested during removal processing")
                outcome = StageOutcome.CANCELLED
                break
            label = self.kind.describe(entry)
            try:
                self.kind.remove(entry, self.ctx)
            except IdNotFoundError as e:
                self.audit.record(self.name, f"Could not remove {label}: {e}", logging.WARNING)
            else:
                self.stats.deletes += 1
                logger.debug(f"{self.name}: removed {label}")
            ledger.retire(entry)

        purged = ledger.purge_retired()
        logger.debug(f"{self.name}: retired {purged} ledger row(s)")
        return outcome

    def cleanup(self) -> None:
        """Close the input file if one is open. Always runs."""
        self._set_state(ProcessorState.CLEANUP)
        if self._input is not None:
            self._input.close()
            self._input = None

    def finalize(self) -> HandlerStats:
        """Compute elapsed time, log the summary line and publish stats."""
        stats = self.stats
        stats.end = int(time.time())
        stats.seconds = stats.end - stats.start
        logger.info(
            f"{self.name} processed {stats.lines} lines with {stats.errors} errors: "
            f"adds={stats.adds}, updates={stats.updates}, deletes={stats.deletes}"
        )
        if stats.errors:
            logger.warning(f"{self.name} had {stats.errors} error(s), see the sync log")
        self._set_state(ProcessorState.DONE)
        return stats
