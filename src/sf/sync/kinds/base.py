"""The strategy interface one entity kind plugs into the generic processor.

A kind only supplies what differs between kinds: how a line becomes a
record, which parent it depends on, how it is written, and what removal
means for it. Reading, validation bookkeeping, stamping, filtering and the
sweep loop live in ``sf.sync.processor``.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from sf.ledger.models import LedgerEntry, MembershipEntry
from sf.sync.parsing import require_min_fields

if TYPE_CHECKING:
    from sf.config.settings import Settings
    from sf.directory.base import CourseDirectory, IdentityDirectory
    from sf.ledger.ledger import ReconciliationLedger
    from sf.sync.state import SyncPolicy, ValidSet


@dataclass
class KindContext:
    """Collaborators a kind may use while handling a record."""

    directory: CourseDirectory
    identity: IdentityDirectory
    ledger: ReconciliationLedger
    settings: Settings
    policy: SyncPolicy


class EntityKind:
    """Base strategy for entity kinds tracked in the ledger by eid."""

    name: ClassVar[str]
    filename: ClassVar[str]
    min_fields: ClassVar[int]

    # Set this kind's eids are registered in, if later kinds depend on it
    registers: ClassVar[ValidSet | None] = None
    # Set the parent must be in for a record to be processed
    parent_set: ClassVar[ValidSet | None] = None

    def parse(self, fields: Sequence[str | None], ctx: KindContext) -> Any:
        """Turn normalized fields into a record.

        Raises:
            LineValidationError: If the line is short or a required value is missing.
        """
        require_min_fields(fields, self.min_fields, self.name)
        return self.build(fields, ctx)

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> Any:
        raise NotImplementedError

    def key(self, record: Any) -> str:
        return record.eid

    def parent_of(self, record: Any) -> str | None:
        return None

    def upsert(self, record: Any, ctx: KindContext) -> str:
        """Write the record. Returns 'new', 'updated' or 'unchanged'."""
        raise NotImplementedError

    def stamp(self, record: Any, ctx: KindContext) -> None:
        ctx.ledger.stamp(self.name, self.key(record), self.parent_of(record))

    def sweep_enabled(self, policy: SyncPolicy) -> bool:
        return True

    def iter_stale(
        self, ctx: KindContext, parents: set[str] | None, page_size: int
    ) -> Iterator[LedgerEntry | MembershipEntry]:
        return ctx.ledger.iter_stale(self.name, parents, page_size)

    def describe(self, entry: Any) -> str:
        return entry.eid

    def remove(self, entry: Any, ctx: KindContext) -> None:
        """Apply this kind's removal action for a stale ledger entry.

        Raises:
            IdNotFoundError: If the target no longer exists.
        """
        raise NotImplementedError
