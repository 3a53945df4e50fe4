"""
Change Feed: Postgres triggers publish row changes with pg_notify on a single
channel; one dedicated LISTEN connection fans them out to subscriptions.
Subscribers only learn that something changed and are expected to re-fetch.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator

import asyncpg

logger = logging.getLogger(__name__)

CHANGE_CHANNEL = "cs_handoff_changes"

Topic = tuple[str, str]  # (table, event) e.g. ("handoffs", "INSERT")


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str  # INSERT, UPDATE, DELETE
    record_id: str | None = None
    handoff_id: str | None = None

    @classmethod
    def from_payload(cls, payload: str) -> "ChangeEvent":
        data = json.loads(payload)
        return cls(
            table=data["table"],
            event=str(data["type"]).upper(),
            record_id=data.get("id"),
            handoff_id=data.get("handoff_id"),
        )


class Subscription:
    """Async iterator of change events for a fixed set of topics."""

    def __init__(self, feed: "ChangeFeed", topics: set[Topic], maxsize: int = 100):
        self.feed = feed
        self.topics = topics
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)

    def matches(self, event: ChangeEvent) -> bool:
        return (event.table, event.event) in self.topics

    def offer(self, event: ChangeEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            # A pending reload already covers this change.
            pass

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.queue.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self, dsn: str, channel: str = CHANGE_CHANNEL):
        self.dsn = dsn
        self.channel = channel
        self._conn: asyncpg.Connection | None = None
        self._subscriptions: set[Subscription] = set()

    async def start(self) -> None:
        self._conn = await asyncpg.connect(self.dsn)
        await self._conn.add_listener(self.channel, self._on_notify)
        logger.info("Listening for changes on %s", self.channel)

    async def stop(self) -> None:
        if self._conn is not None:
            await self._conn.remove_listener(self.channel, self._on_notify)
            await self._conn.close()
            self._conn = None

    def subscribe(self, *topics: Topic) -> Subscription:
        sub = Subscription(self, {(table, event.upper()) for table, event in topics})
        self._subscriptions.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscriptions.discard(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def dispatch(self, event: ChangeEvent) -> None:
        for sub in list(self._subscriptions):
            if sub.matches(event):
                sub.offer(event)

    def _on_notify(self, conn, pid, channel, payload) -> None:
        try:
            event = ChangeEvent.from_payload(payload)
        except (ValueError, KeyError) as e:
            logger.error("Malformed change notification on %s: %s (%r)", channel, e, payload)
            return
        self.dispatch(event)
