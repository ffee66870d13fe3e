"""Exceptions raised by the sync engine."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync failures."""

    pass


class SyncInProgressError(SyncError):
    """Raised when a sync is requested while another is running."""

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id
        detail = f" ({run_id})" if run_id else ""
        super().__init__(f"A sync run is already in progress{detail}; not starting another.")


class LineValidationError(SyncError):
    """A single extract line is unusable. Counted and skipped, never fatal."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        self.line_number = line_number
        super().__init__(message)


class SnapshotError(SyncError):
    """The intake batch could not be isolated into a working directory."""

    pass
