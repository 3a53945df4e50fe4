"""
Enum capability query: legal category and priority values are owned by the
database and exposed through two RPC functions.
"""

import logging
from dataclasses import dataclass

from cshandoff.database import Database
from cshandoff.errors import BackendError
from cshandoff.models.profile import Actor
from cshandoff.modules.handoffs.store import DATABASE_ERRORS

logger = logging.getLogger(__name__)

DEFAULT_PRIORITIES: tuple[str, ...] = ("low", "medium", "high")
PREFERRED_CATEGORY = "general"
PREFERRED_PRIORITY = "medium"


@dataclass(frozen=True)
class EnumOptions:
    values: tuple[str, ...]
    default: str | None

    def __contains__(self, value: object) -> bool:
        return value in self.values


def _with_default(values: tuple[str, ...], preferred: str) -> EnumOptions:
    if preferred in values:
        return EnumOptions(values, preferred)
    return EnumOptions(values, values[0] if values else None)


class EnumCatalog:
    def __init__(self, db: Database):
        self.db = db

    async def _query(self, actor: Actor | None, function: str) -> tuple[str, ...]:
        async with self.db.session(actor) as conn:
            rows = await conn.fetch(f"SELECT value::text AS value FROM {function}() AS value")
        return tuple(str(r["value"]) for r in rows)

    async def categories(self, actor: Actor | None) -> EnumOptions:
        """Required: a failure here is surfaced to the caller."""
        try:
            values = await self._query(actor, "get_cs_category_enum")
        except DATABASE_ERRORS as e:
            raise BackendError(str(e)) from e
        return _with_default(values, PREFERRED_CATEGORY)

    async def priorities(self, actor: Actor | None) -> EnumOptions:
        """Falls back to DEFAULT_PRIORITIES when the RPC is missing or empty."""
        try:
            values = await self._query(actor, "get_cs_priority_enum")
        except DATABASE_ERRORS as e:
            logger.warning("Priority enum query failed, using defaults: %s", e)
            values = ()
        return _with_default(values or DEFAULT_PRIORITIES, PREFERRED_PRIORITY)
