"""
Handoff Store: reads and writes against handoffs, handoff_updates and
handoff_tokens. Every call is one request/response round trip; nothing is cached
and nothing is retried. Rows are decoded through the pydantic models and a shape
mismatch fails closed.
"""

import logging
import secrets
import string
from typing import Any, Type, TypeVar
from uuid import UUID

import asyncpg
from pydantic import BaseModel, ValidationError

from cshandoff.database import Database
from cshandoff.errors import BackendError, NotFound, SilentWriteRejection, Unauthorized, ValidationFailed
from cshandoff.models.handoff import Handoff, HandoffUpdate, UpdateSource
from cshandoff.models.profile import Actor
from cshandoff.modules.handoffs.status import OPEN, RESOLVED

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

HANDOFF_COLUMNS = (
    "id, created_at, summary, category, priority, location_code, status, "
    "last_update_at, last_update_by_snapshot, created_by, created_by_display_name_snapshot"
)
UPDATE_COLUMNS = "id, created_at, handoff_id, author_user_id, author_display_name_snapshot, source, message"

# Server errors plus connection-level failures
DATABASE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_LENGTH = 6


def decode(model: Type[M], row: Any) -> M:
    """Validate a database row against `model`."""
    try:
        return model.model_validate(dict(row))
    except ValidationError as e:
        logger.error("Unexpected %s row shape: %s", model.__name__, e)
        raise ValidationFailed(f"Unexpected {model.__name__} record shape from the database") from e


def backend_error(e: Exception) -> Exception:
    """Translate a database error into the handoff error taxonomy."""
    if isinstance(e, asyncpg.InsufficientPrivilegeError):
        return Unauthorized(str(e))
    return BackendError(str(e) or f"Database unavailable ({type(e).__name__})")


class HandoffStore:
    def __init__(self, db: Database):
        self.db = db

    async def list_handoffs(self, actor: Actor | None) -> list[Handoff]:
        """All handoffs visible to the actor, last touched first."""
        try:
            async with self.db.session(actor) as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {HANDOFF_COLUMNS} FROM handoffs
                    ORDER BY last_update_at DESC NULLS LAST, created_at DESC
                    """
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        return [decode(Handoff, r) for r in rows]

    async def get_handoff(self, actor: Actor | None, handoff_id: UUID | str) -> Handoff:
        try:
            async with self.db.session(actor) as conn:
                row = await conn.fetchrow(
                    f"SELECT {HANDOFF_COLUMNS} FROM handoffs WHERE id = $1",
                    _as_uuid(handoff_id),
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        if not row:
            raise NotFound(f"Handoff {handoff_id} not found")
        return decode(Handoff, row)

    async def list_updates(self, actor: Actor | None, handoff_id: UUID | str) -> list[HandoffUpdate]:
        """Updates for a handoff, newest first."""
        try:
            async with self.db.session(actor) as conn:
                rows = await conn.fetch(
                    f"SELECT {UPDATE_COLUMNS} FROM handoff_updates WHERE handoff_id = $1 ORDER BY created_at DESC",
                    _as_uuid(handoff_id),
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        return [decode(HandoffUpdate, r) for r in rows]

    async def create_handoff(
        self,
        actor: Actor,
        summary: str,
        category: str,
        priority: str,
        location_code: str,
        display_name: str | None = None,
    ) -> UUID:
        """Insert a new handoff. Status always starts as open."""
        try:
            async with self.db.session(actor) as conn:
                new_id = await conn.fetchval(
                    """
                    INSERT INTO handoffs (summary, category, priority, status, location_code,
                                          created_by, created_by_display_name_snapshot)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    RETURNING id
                    """,
                    summary, category, priority, OPEN, location_code,
                    actor.user_id, display_name,
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        if new_id is None:
            raise SilentWriteRejection("Handoff was not created. Access control rejected the insert.")
        logger.info("Handoff %s created by %s (priority=%s)", new_id, actor.user_id, priority)
        return new_id

    async def append_update(
        self,
        actor: Actor | None,
        handoff_id: UUID | str,
        message: str,
        source: UpdateSource,
        author_display_name: str | None = None,
    ) -> None:
        """Append one update. Existing updates are never modified."""
        try:
            async with self.db.session(actor) as conn:
                await conn.execute(
                    """
                    INSERT INTO handoff_updates (handoff_id, author_user_id, author_display_name_snapshot, source, message)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    _as_uuid(handoff_id),
                    actor.user_id if actor else None,
                    author_display_name,
                    source,
                    message,
                )
        except asyncpg.ForeignKeyViolationError as e:
            raise NotFound(f"Handoff {handoff_id} not found") from e
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        logger.info("Update appended to handoff %s (source=%s)", handoff_id, source)

    async def resolve(self, actor: Actor, handoff_id: UUID | str, display_name: str | None = None) -> Handoff:
        """Mark resolved. The updated row is requested back so an RLS-dropped write is detectable."""
        try:
            async with self.db.session(actor) as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE handoffs
                    SET status = $2, last_update_at = NOW(), last_update_by_snapshot = $3
                    WHERE id = $1
                    RETURNING {HANDOFF_COLUMNS}
                    """,
                    _as_uuid(handoff_id), RESOLVED, display_name,
                )
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e
        if not row:
            logger.warning("Resolve of handoff %s by %s affected 0 rows", handoff_id, actor.user_id)
            raise SilentWriteRejection(
                "0 rows updated. Access control is blocking UPDATE on handoffs for this user."
            )
        logger.info("Handoff %s resolved by %s", handoff_id, actor.user_id)
        return decode(Handoff, row)

    async def lookup_token(self, token: str) -> UUID | None:
        """Map an SMS short token to its handoff id."""
        try:
            async with self.db.session() as conn:
                return await conn.fetchval("SELECT handoff_id FROM handoff_tokens WHERE token = $1", token)
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e

    async def create_token(self, handoff_id: UUID | str) -> str:
        """Mint a reply token for outbound SMS, reusing an existing one for the handoff."""
        try:
            async with self.db.session() as conn:
                existing = await conn.fetchval(
                    "SELECT token FROM handoff_tokens WHERE handoff_id = $1 LIMIT 1", _as_uuid(handoff_id),
                )
                if existing:
                    return existing
                token = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
                await conn.execute(
                    "INSERT INTO handoff_tokens (token, handoff_id) VALUES ($1, $2)", token, _as_uuid(handoff_id),
                )
                return token
        except DATABASE_ERRORS as e:
            raise backend_error(e) from e


def _as_uuid(value: UUID | str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as e:
        raise NotFound(f"Handoff {value} not found") from e
