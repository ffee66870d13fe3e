"""Upload intake: store named extract files where the next sync will find them.

A part named after a kind's file (``sessions``, ``people``, ...) is written
to ``<intake>/<part>.csv``. Unknown part names are skipped.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import IO, TYPE_CHECKING

from sf.sync.job import run_sync_job
from sf.sync.orchestrator import default_kinds

if TYPE_CHECKING:
    from sf.config.settings import Settings
    from sf.sync.state import SyncOverrides

logger = logging.getLogger(__name__)

KIND_FILENAMES: dict[str, str] = {kind.name: kind.filename for kind in default_kinds()}
PART_NAMES: frozenset[str] = frozenset(
    Path(filename).stem for filename in KIND_FILENAMES.values()
)


def store_upload(intake_dir: Path | str, parts: Mapping[str, IO[bytes]]) -> list[Path]:
    """Write uploaded parts into the intake directory.

    Args:
        intake_dir: Directory the sync reads batches from.
        parts: Part name to binary stream.

    Returns:
        Paths written, in part order.
    """
    intake_dir = Path(intake_dir)
    intake_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for part_name, stream in parts.items():
        if part_name not in PART_NAMES:
            logger.warning(f"Ignoring upload part '{part_name}': not a known extract")
            continue
        target = intake_dir / f"{part_name}.csv"
        with open(target, "wb") as out:
            shutil.copyfileobj(stream, out)
        logger.info(f"Stored upload part {part_name} as {target}")
        written.append(target)
    return written


def intake_batch(
    parts: Mapping[str, IO[bytes]],
    settings: Settings,
    overrides: SyncOverrides | None = None,
    run_job: bool = False,
) -> list[Path]:
    """Store an upload and optionally start a sync straight away.

    Args:
        parts: Part name to binary stream.
        settings: Installation settings (intake directory, database).
        overrides: Per-run overrides passed to the triggered job.
        run_job: Trigger a sync once the files are stored.

    Returns:
        Paths written.

    Raises:
        SyncInProgressError: If ``run_job`` is set and a sync is already running.
    """
    written = store_upload(settings.intake_dir, parts)
    if run_job:
        properties = overrides.to_properties() if overrides else {}
        run_sync_job(properties, settings)
    return written
