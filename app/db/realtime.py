"""
In-process change feed — push notifications for committed mutations.

Subscribers register for one collection plus an equality filter and receive
a :class:`Change` after every matching insert / update / delete.  Consumers
are expected to re-read the whole aggregate they display; changes carry the
affected row only so filters can be matched.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class Change:
    table: str
    op: str
    row: dict[str, Any] = field(default_factory=dict)


class Subscription:
    """A queue of changes for one ``table`` + ``filters`` pair.

    Use as a context manager so the subscription is always detached::

        with change_feed.subscribe("task_comments", task_id=7) as sub:
            change = await sub.get()
    """

    def __init__(self, feed: ChangeFeed, table: str, filters: dict[str, Any], maxsize: int) -> None:
        self._feed = feed
        self.table = table
        self.filters = filters
        self.queue: asyncio.Queue[Change] = asyncio.Queue(maxsize=maxsize)

    def matches(self, change: Change) -> bool:
        if change.table != self.table:
            return False
        return all(change.row.get(k) == v for k, v in self.filters.items())

    def deliver(self, change: Change) -> None:
        if self.queue.full():
            # Consumers re-read everything, so the oldest pending change is redundant
            self.queue.get_nowait()
        self.queue.put_nowait(change)

    async def get(self, timeout: float | None = None) -> Change:
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout)

    def close(self) -> None:
        self._feed.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ChangeFeed:
    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subscriptions: list[Subscription] = []

    def subscribe(self, table: str, **filters: Any) -> Subscription:
        sub = Subscription(self, table, filters, self._maxsize)
        self._subscriptions.append(sub)
        logger.debug("Subscribed to %s %s", table, filters)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def publish(self, change: Change) -> int:
        """Deliver *change* to every matching subscriber; return the count."""
        delivered = 0
        for sub in list(self._subscriptions):
            if sub.matches(change):
                sub.deliver(change)
                delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


change_feed = ChangeFeed()
