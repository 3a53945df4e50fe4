"""
Database: asyncpg pool wrapper. Queries made on behalf of a signed-in actor run
with the `authenticated` role and the actor's JWT claims so row-level security
policies apply to them; queries without an actor run as the login role.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from cshandoff.models.profile import Actor

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10):
        self.dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.dsn, min_size=self._min_size, max_size=self._max_size,
            )
            logger.info("Database pool opened (min=%d, max=%d)", self._min_size, self._max_size)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database.connect() has not been called")
        return self._pool

    @asynccontextmanager
    async def session(self, actor: Actor | None = None) -> AsyncIterator[asyncpg.Connection]:
        """Yield a connection inside a transaction, scoped to `actor` when given."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                if actor is not None:
                    claims = {"sub": str(actor.user_id), "role": "authenticated", "email": actor.email}
                    await conn.execute(
                        "SELECT set_config('request.jwt.claims', $1, true), set_config('role', 'authenticated', true)",
                        json.dumps(claims),
                    )
                yield conn
