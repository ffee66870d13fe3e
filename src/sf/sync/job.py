"""Job entry point for schedulers and the upload intake.

The entry point takes a plain string property bag and returns nothing; the
outcome is read back afterwards from the orchestrator or the sync_run table.
"""

from __future__ import annotations

import logging

from sf.config.settings import Settings, load_settings
from sf.sync.orchestrator import SyncOrchestrator
from sf.sync.state import SyncContext

logger = logging.getLogger(__name__)

# Process-wide orchestrator; its lock is what keeps runs exclusive
_orchestrator: SyncOrchestrator | None = None


def get_orchestrator(settings: Settings | None = None) -> SyncOrchestrator:
    """Return the shared orchestrator, creating it on first use.

    Passing different settings while no run is active rebuilds it.
    """
    global _orchestrator

    if _orchestrator is None:
        _orchestrator = SyncOrchestrator(settings or load_settings())
    elif settings is not None and settings != _orchestrator.settings:
        if _orchestrator.running:
            logger.warning("Settings changed while a sync is running; keeping current settings")
        else:
            _orchestrator = SyncOrchestrator(settings)
    return _orchestrator


def reset_orchestrator() -> None:
    """Forget the shared orchestrator (for testing)."""
    global _orchestrator
    _orchestrator = None


def run_sync_job(properties: dict[str, str] | None = None, settings: Settings | None = None) -> None:
    """Run one sync.

    Args:
        properties: String overrides (ignoreMissingSessions,
            ignoreMembershipRemovals, userRemovalMode). The engine also keeps
            its batch path bookkeeping here under ``sf.sync.`` keys.
        settings: Installation settings. Loaded from the config file if omitted.

    Raises:
        SyncInProgressError: If another sync is running.
    """
    context = SyncContext(properties if properties is not None else {})
    state = get_orchestrator(settings).sync(context)
    if state is None:
        logger.info("Sync job finished: no batch to process")
    else:
        logger.info(f"Sync job {state.run_id} finished with status {state.status.value}")
