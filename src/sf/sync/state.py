"""Run-scoped state and policy for the sync engine.

RunState is created by the orchestrator at the start of a run, handed to
every stage, and dropped when the run ends (only the rendered summary is
persisted).
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sf.ledger.models import RunStatus

if TYPE_CHECKING:
    from sf.config.settings import Settings

logger = logging.getLogger(__name__)

__all__ = [
    "CancellationToken",
    "HandlerStats",
    "ProcessorState",
    "RunState",
    "RunStatus",
    "StageOutcome",
    "SyncContext",
    "SyncOverrides",
    "SyncPolicy",
    "UserRemovalMode",
    "ValidSet",
    "format_summary",
    "new_run_id",
]

_run_counter = itertools.count(1)


def new_run_id() -> str:
    """Return '<counter>:<epoch seconds>', unique within the process."""
    return f"{next(_run_counter)}:{int(time.time())}"


class ProcessorState(str, Enum):
    """Lifecycle state of the entity processor currently running."""

    START = "start"
    MOVE = "move"
    READ = "read"
    PROCESS = "process"
    CLEANUP = "cleanup"
    DONE = "done"
    FAIL = "fail"


class StageOutcome(str, Enum):
    """How an ingest or reconcile stage ended, short of raising."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class ValidSet(str, Enum):
    """Per-run sets of eids seen in the current snapshot."""

    SESSIONS = "sessions"
    COURSE_OFFERINGS = "course_offerings"
    ENROLLMENT_SETS = "enrollment_sets"
    SECTIONS = "sections"


class UserRemovalMode(str, Enum):
    """What happens to a person missing from the snapshot."""

    DISABLE = "disable"
    DELETE = "delete"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value: str | None) -> UserRemovalMode | None:
        """Return the mode named by ``value`` (case-insensitive), or None."""
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class CancellationToken:
    """Cooperative stop flag polled between lines, entries and stages."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def request(self) -> None:
        self._event.set()

    @property
    def requested(self) -> bool:
        return self._event.is_set()


@dataclass
class HandlerStats:
    """Counters for one entity kind in one run."""

    lines: int = 0
    errors: int = 0
    adds: int = 0
    updates: int = 0
    deletes: int = 0
    start: int = 0
    seconds: int = 0
    end: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for JSON serialization."""
        return {
            "lines": self.lines,
            "errors": self.errors,
            "adds": self.adds,
            "updates": self.updates,
            "deletes": self.deletes,
            "start": self.start,
            "seconds": self.seconds,
            "end": self.end,
        }


def _parse_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.strip().lower() == "true"


@dataclass
class SyncOverrides:
    """Per-run overrides read from a job's property bag. None means 'not given'."""

    ignore_missing_sessions: bool | None = None
    ignore_membership_removals: bool | None = None
    user_removal_mode: str | None = None

    IGNORE_MISSING_SESSIONS = "ignoreMissingSessions"
    IGNORE_MEMBERSHIP_REMOVALS = "ignoreMembershipRemovals"
    USER_REMOVAL_MODE = "userRemovalMode"

    @classmethod
    def from_properties(cls, properties: dict[str, str]) -> SyncOverrides:
        return cls(
            ignore_missing_sessions=_parse_bool(properties.get(cls.IGNORE_MISSING_SESSIONS)),
            ignore_membership_removals=_parse_bool(
                properties.get(cls.IGNORE_MEMBERSHIP_REMOVALS)
            ),
            user_removal_mode=properties.get(cls.USER_REMOVAL_MODE),
        )

    def to_properties(self) -> dict[str, str]:
        """Inverse of ``from_properties``, omitting values that were not given."""
        properties: dict[str, str] = {}
        if self.ignore_missing_sessions is not None:
            properties[self.IGNORE_MISSING_SESSIONS] = str(self.ignore_missing_sessions).lower()
        if self.ignore_membership_removals is not None:
            properties[self.IGNORE_MEMBERSHIP_REMOVALS] = str(
                self.ignore_membership_removals
            ).lower()
        if self.user_removal_mode is not None:
            properties[self.USER_REMOVAL_MODE] = self.user_removal_mode
        return properties


@dataclass(frozen=True)
class SyncPolicy:
    """Effective policy for one run: per-run override, else installation default."""

    ignore_missing_sessions: bool = False
    ignore_membership_removals: bool = False
    user_removal_mode: UserRemovalMode = UserRemovalMode.DISABLE
    suspended_type: str = "suspended"

    @classmethod
    def resolve(cls, settings: Settings, overrides: SyncOverrides | None = None) -> SyncPolicy:
        """Combine installation defaults with per-run overrides.

        An invalid configured removal mode falls back to 'disable'; an
        invalid override is ignored. Both are logged as warnings.
        """
        overrides = overrides or SyncOverrides()

        mode = UserRemovalMode.parse(settings.user_removal_mode)
        if mode is None:
            logger.warning(
                f"Invalid configured user_removal_mode '{settings.user_removal_mode}', "
                f"using '{UserRemovalMode.DISABLE.value}'"
            )
            mode = UserRemovalMode.DISABLE

        if overrides.user_removal_mode is not None:
            override_mode = UserRemovalMode.parse(overrides.user_removal_mode)
            if override_mode is None:
                logger.warning(
                    f"Ignoring invalid userRemovalMode override '{overrides.user_removal_mode}', "
                    f"keeping '{mode.value}'"
                )
            else:
                mode = override_mode

        ignore_missing_sessions = settings.ignore_missing_sessions
        if overrides.ignore_missing_sessions is not None:
            ignore_missing_sessions = overrides.ignore_missing_sessions

        ignore_membership_removals = settings.ignore_membership_removals
        if overrides.ignore_membership_removals is not None:
            ignore_membership_removals = overrides.ignore_membership_removals

        return cls(
            ignore_missing_sessions=ignore_missing_sessions,
            ignore_membership_removals=ignore_membership_removals,
            user_removal_mode=mode,
            suspended_type=settings.suspended_type,
        )


@dataclass
class SyncContext:
    """The property bag a sync job is invoked with.

    Holds caller overrides plus the engine's own ``sf.sync.`` bookkeeping
    keys, which are cleared when a batch is closed.
    """

    properties: dict[str, str] = field(default_factory=dict)

    RUN_KEY_PREFIX = "sf.sync."
    BATCH_UPLOAD_DIR = "sf.sync.batch-upload-dir"
    BATCH_PROCESSING_DIR = "sf.sync.batch-processing-dir"

    @property
    def overrides(self) -> SyncOverrides:
        return SyncOverrides.from_properties(self.properties)

    def clear_run_keys(self) -> list[str]:
        """Remove every run-scoped key. Returns the keys removed."""
        keys = [k for k in self.properties if k.startswith(self.RUN_KEY_PREFIX)]
        for key in keys:
            del self.properties[key]
        return keys


@dataclass
class RunState:
    """Everything the pipeline shares during one run."""

    run_id: str
    stamp: datetime
    policy: SyncPolicy
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: RunStatus = RunStatus.RUNNING
    batch_ok: bool = True
    is_final_action: bool = False
    batch_upload_dir: Path | None = None
    batch_dir: Path | None = None
    valid_ids: dict[ValidSet, set[str]] = field(
        default_factory=lambda: {valid_set: set() for valid_set in ValidSet}
    )
    stats: dict[str, HandlerStats] = field(default_factory=dict)
    current_processor: str | None = None
    current_state: ProcessorState | None = None
    summary: str | None = None
    token: CancellationToken = field(default_factory=CancellationToken)

    @property
    def stop_requested(self) -> bool:
        return self.token.requested

    @property
    def success(self) -> bool:
        return not self.stop_requested and self.batch_ok

    def set_processor_state(
        self, name: str, state: ProcessorState, stats: HandlerStats | None = None
    ) -> None:
        """Record a processor state transition; ``done`` publishes its stats."""
        self.current_processor = name
        self.current_state = state
        logger.debug(f"Sync ({self.run_id}): {name} state is: {state.value}")
        if state is ProcessorState.DONE and stats is not None:
            self.stats[name] = stats

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "stamp": self.stamp.isoformat(),
            "started_at": self.started_at.isoformat(),
            "status": self.status.value,
            "batch_ok": self.batch_ok,
            "batch_dir": str(self.batch_dir) if self.batch_dir else None,
            "policy": {
                "ignore_missing_sessions": self.policy.ignore_missing_sessions,
                "ignore_membership_removals": self.policy.ignore_membership_removals,
                "user_removal_mode": self.policy.user_removal_mode.value,
            },
            "stats": {name: stats.to_dict() for name, stats in self.stats.items()},
        }


def format_summary(state: RunState) -> str:
    """Render the end-of-run table: one line per kind plus a total."""
    outcome = "completed" if state.success else "failed"
    batch = "ok" if state.batch_ok else "not ok"
    lines = [f"Sync ({state.run_id}) {outcome}, batch {batch}:"]

    total = HandlerStats()
    for name, stats in state.stats.items():
        lines.append(
            f"  - {name:<20}: processed {stats.lines:6d} lines with {stats.errors:4d} errors "
            f"in {stats.seconds:4d} seconds: {stats.adds:4d} adds, {stats.updates:4d} updates, "
            f"{stats.deletes:4d} deletes"
        )
        total.lines += stats.lines
        total.errors += stats.errors
        total.seconds += stats.seconds
        total.adds += stats.adds
        total.updates += stats.updates
        total.deletes += stats.deletes

    lines.append(
        f"  --- TOTAL:         processed {total.lines:6d} lines with {total.errors:5d} errors "
        f"in {total.seconds:5d} seconds: {total.adds:5d} adds, {total.updates:5d} updates, "
        f"{total.deletes:5d} deletes"
    )
    return "\n".join(lines) + "\n"
