"""Dependency filter: skip children whose parent is missing from the snapshot."""

from __future__ import annotations

import logging

from sf.sync.state import RunState, ValidSet

logger = logging.getLogger(__name__)


class DependencyFilter:
    """Consults and builds the run's valid-id sets.

    Only active when the run's policy ignores missing sessions. When it is
    off, nothing is registered and every check passes.
    """

    def __init__(self, state: RunState) -> None:
        self.state = state

    @property
    def active(self) -> bool:
        return self.state.policy.ignore_missing_sessions

    def allows(self, valid_set: ValidSet | None, parent_eid: str | None) -> bool:
        """Return True if a record with this parent may be processed.

        Args:
            valid_set: The parent kind's set, or None for kinds without a parent.
            parent_eid: The parent named on the line.
        """
        if not self.active or valid_set is None:
            return True
        return parent_eid is not None and parent_eid in self.state.valid_ids[valid_set]

    def register(self, valid_set: ValidSet | None, eid: str) -> None:
        """Mark ``eid`` as present in this run's snapshot."""
        if self.active and valid_set is not None:
            self.state.valid_ids[valid_set].add(eid)

    def parents(self, valid_set: ValidSet | None) -> set[str] | None:
        """Return the set a sweep must be restricted to, or None for no restriction."""
        if not self.active or valid_set is None:
            return None
        return set(self.state.valid_ids[valid_set])
