"""SQLModel models for the sis-feed run log and reconciliation ledger.

SyncRun and SyncLog record what each run did. LedgerEntry and
MembershipEntry hold the "last seen" stamp used to derive removals.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class RunStatus(str, Enum):
    """Status of a sync run."""

    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class MembershipMode(str, Enum):
    """Container kind a membership row belongs to."""

    COURSE = "course"
    SECTION = "section"
    ENROLLMENT = "enrollment"


class SyncRun(SQLModel, table=True):
    """One execution of the sync pipeline.

    The in-memory run state is discarded when a run ends; this row is the
    persisted record, including the rendered summary.
    """

    __tablename__ = "sync_run"

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True, description="Counter plus epoch seconds, e.g. '3:1767225600'")
    stamp: datetime = Field(description="Ledger stamp shared by every record of the run (UTC)")
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = Field(default=None)
    status: RunStatus = Field(default=RunStatus.RUNNING)
    batch_ok: bool = Field(default=True)
    batch_dir: str | None = Field(default=None)
    summary: str | None = Field(default=None)
    error_message: str | None = Field(default=None)

    def mark_finished(
        self,
        success: bool,
        batch_ok: bool,
        summary: str,
        batch_dir: str | None = None,
    ) -> None:
        """Record the outcome of the run."""
        self.completed_at = _utcnow()
        self.status = RunStatus.COMPLETE if success else RunStatus.FAILED
        self.batch_ok = batch_ok
        self.summary = summary
        if batch_dir:
            self.batch_dir = batch_dir

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "run_id": self.run_id,
            "stamp": self.stamp.isoformat() if self.stamp else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status.value,
            "batch_ok": self.batch_ok,
            "batch_dir": self.batch_dir,
            "summary": self.summary,
            "error_message": self.error_message,
        }


class SyncLog(SQLModel, table=True):
    """Audit row appended for every notable condition during a run."""

    __tablename__ = "sync_log"

    id: int | None = Field(default=None, primary_key=True)
    run_id: str | None = Field(default=None, index=True)
    source: str = Field(description="Component that raised the condition, e.g. 'Section'")
    message: str
    created_at: datetime = Field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "run_id": self.run_id,
            "source": self.source,
            "message": self.message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class LedgerEntry(SQLModel, table=True):
    """Last-seen stamp for one entity of one kind.

    (kind, eid) is expected to be unique but is deliberately not constrained:
    duplicates are collapsed by the ledger when they are encountered.
    """

    __tablename__ = "ledger_entry"

    id: int | None = Field(default=None, primary_key=True)
    kind: str = Field(index=True)
    eid: str = Field(index=True)
    parent_eid: str | None = Field(default=None, index=True)
    input_time: datetime = Field(index=True, description="Stamp of the last run that saw this eid")


class MembershipEntry(SQLModel, table=True):
    """Last-seen stamp for a user's membership in a container."""

    __tablename__ = "membership_entry"

    id: int | None = Field(default=None, primary_key=True)
    mode: MembershipMode = Field(index=True)
    user_eid: str = Field(index=True)
    container_eid: str = Field(index=True)
    role: str | None = Field(default=None)
    input_time: datetime = Field(index=True)
