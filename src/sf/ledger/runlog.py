"""Persistent run log: audit rows and run history queries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlmodel import Session, select

from sf.ledger.models import SyncLog, SyncRun
from sf.ledger.store import get_session

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class RunLog:
    """Collects audit messages for one run.

    Messages are held until ``flush`` so a rollback of the processing
    transaction does not lose the explanation of why it was rolled back.
    """

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id
        self._pending: list[SyncLog] = []

    def record(self, source: str, message: str, level: int = logging.INFO) -> None:
        """Log a message and queue it for the sync_log table."""
        logger.log(level, f"{source}: {message}")
        self._pending.append(SyncLog(run_id=self.run_id, source=source, message=message))

    @property
    def pending(self) -> list[SyncLog]:
        return list(self._pending)

    def flush(self, session: Session) -> int:
        """Add queued rows to the session. The caller commits.

        Returns:
            Number of rows added.
        """
        count = len(self._pending)
        session.add_all(self._pending)
        self._pending = []
        return count


def get_last_sync_run(db_path: Path | str) -> SyncRun | None:
    """Return the most recently started run, if any."""
    with get_session(db_path) as session:
        stmt = select(SyncRun).order_by(SyncRun.id.desc()).limit(1)  # type: ignore[union-attr]
        return session.exec(stmt).first()


def get_sync_runs(db_path: Path | str, limit: int = 10) -> list[SyncRun]:
    """Return recent runs, newest first."""
    with get_session(db_path) as session:
        stmt = select(SyncRun).order_by(SyncRun.id.desc()).limit(limit)  # type: ignore[union-attr]
        return list(session.exec(stmt).all())


def get_sync_logs(
    db_path: Path | str,
    run_id: str | None = None,
    limit: int = 100,
) -> list[SyncLog]:
    """Return audit rows, oldest first.

    Args:
        db_path: Path to the SQLite database.
        run_id: Restrict to one run.
        limit: Maximum number of rows.
    """
    with get_session(db_path) as session:
        stmt = select(SyncLog)
        if run_id:
            stmt = stmt.where(SyncLog.run_id == run_id)
        stmt = stmt.order_by(SyncLog.id).limit(limit)
        return list(session.exec(stmt).all())
