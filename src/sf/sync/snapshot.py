"""Isolation of an uploaded batch into a private working directory.

Uploads land in the intake directory. Before a run reads anything, every
file is moved into ``<intake>/sf-batch-<epoch ms>`` so an upload arriving
mid-run cannot overwrite a file that is being processed.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from sf.ledger.runlog import RunLog
from sf.sync.errors import SnapshotError
from sf.sync.state import RunState, SyncContext

logger = logging.getLogger(__name__)

BATCH_DIR_PREFIX = "sf-batch-"
FINISHED_SUFFIX = "-finished"
FAILED_SUFFIX = "-failed"
MAX_NAME_ATTEMPTS = 5


class SnapshotManager:
    """Moves intake files into a working directory and closes it afterwards."""

    def __init__(self, intake_dir: Path | str, audit: RunLog | None = None) -> None:
        self.intake_dir = Path(intake_dir)
        self.audit = audit or RunLog()

    def has_batch(self) -> bool:
        """Return True if the intake directory holds at least one regular file."""
        if not self.intake_dir.is_dir():
            return False
        return any(not path.is_dir() for path in self.intake_dir.iterdir())

    def _new_batch_dir(self) -> Path:
        for _ in range(MAX_NAME_ATTEMPTS):
            candidate = self.intake_dir / f"{BATCH_DIR_PREFIX}{int(time.time() * 1000)}"
            try:
                candidate.mkdir()
            except FileExistsError:
                time.sleep(0.005)
                continue
            return candidate
        raise SnapshotError(
            f"Could not create a unique batch directory in {self.intake_dir} "
            f"after {MAX_NAME_ATTEMPTS} attempts"
        )

    @staticmethod
    def _clear_files(directory: Path | None) -> None:
        """Delete regular files in ``directory``; failures are logged, not raised."""
        if directory is None or not directory.is_dir():
            return
        for path in directory.iterdir():
            if path.is_dir():
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.error(f"Could not remove {path} while rolling back batch: {e}")

    def isolate(self, state: RunState, context: SyncContext) -> Path:
        """Move the batch into a fresh working directory.

        Records both directories on the run state and in the context's
        run-scoped keys.

        Raises:
            SnapshotError: If the directory cannot be created or a file cannot
                be moved. In the latter case both directories are cleared.
        """
        batch_dir = self._new_batch_dir()
        state.batch_upload_dir = self.intake_dir
        state.batch_dir = batch_dir
        context.properties[SyncContext.BATCH_UPLOAD_DIR] = str(self.intake_dir)
        context.properties[SyncContext.BATCH_PROCESSING_DIR] = str(batch_dir)

        moved = 0
        for path in sorted(self.intake_dir.iterdir()):
            if path.is_dir():
                continue
            try:
                shutil.move(str(path), str(batch_dir / path.name))
            except OSError as e:
                logger.error(f"Failed to move {path} into {batch_dir}: {e}")
                self._clear_files(self.intake_dir)
                self._clear_files(batch_dir)
                raise SnapshotError(f"Failed to move {path.name} into {batch_dir}: {e}") from e
            moved += 1

        self.audit.record("SnapshotManager", f"Moved {moved} file(s) into {batch_dir}")
        return batch_dir

    def close(self, state: RunState, context: SyncContext) -> Path | None:
        """Rename the working directory by outcome and clear run-scoped keys.

        This runs on the cleanup path, so failures are logged and swallowed.

        Returns:
            The renamed directory, or None if there was nothing to rename.
        """
        closed: Path | None = None
        batch_dir = state.batch_dir
        if batch_dir is not None and batch_dir.is_dir():
            suffix = FINISHED_SUFFIX if state.success else FAILED_SUFFIX
            target = batch_dir.with_name(batch_dir.name + suffix)
            try:
                batch_dir.rename(target)
                closed = target
                state.batch_dir = target
                self.audit.record("SnapshotManager", f"Closed batch as {target.name}")
            except OSError as e:
                logger.error(f"Could not rename batch directory {batch_dir}: {e}")

        removed = context.clear_run_keys()
        logger.debug(f"Cleared run keys: {', '.join(removed) or '(none)'}")
        return closed
