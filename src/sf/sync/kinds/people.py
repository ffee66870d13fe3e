"""People, written to the identity directory."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from sf.directory.base import PersonData
from sf.sync.kinds.base import EntityKind, KindContext
from sf.sync.parsing import field_at, require
from sf.sync.state import UserRemovalMode

if TYPE_CHECKING:
    from sf.ledger.models import LedgerEntry
    from sf.sync.state import SyncPolicy


class PersonKind(EntityKind):
    """people.csv: eid, lastName, firstName, email, password, type, then the
    configured optional fields in order.

    The optional field named by ``person_id_field`` is a preferred user id,
    honored only when the person is created. The rest become properties;
    a blank value removes the property.
    """

    name = "Person"
    filename = "people.csv"
    min_fields = 6

    def build(self, fields: Sequence[str | None], ctx: KindContext) -> PersonData:
        eid, last_name, first_name, email, password, user_type = fields[:6]
        require(eid, "eid", eid)

        preferred_id: str | None = None
        properties: dict[str, str | None] = {}
        for offset, field_name in enumerate(ctx.settings.person_optional_fields):
            value = field_at(fields, 6 + offset)
            if field_name == ctx.settings.person_id_field:
                preferred_id = value
            else:
                properties[field_name] = value

        return PersonData(
            eid=eid,  # type: ignore[arg-type]
            last_name=last_name,
            first_name=first_name,
            email=email,
            password=password,
            type=user_type,
            properties=properties,
            preferred_id=preferred_id,
        )

    def upsert(self, record: PersonData, ctx: KindContext) -> str:
        return ctx.identity.upsert_person(record)

    def sweep_enabled(self, policy: SyncPolicy) -> bool:
        return policy.user_removal_mode is not UserRemovalMode.IGNORE

    def remove(self, entry: LedgerEntry, ctx: KindContext) -> None:
        if ctx.policy.user_removal_mode is UserRemovalMode.DELETE:
            ctx.identity.delete_person(entry.eid)
        else:
            ctx.identity.suspend_person(entry.eid, ctx.policy.suspended_type)
