"""
In-process change feed.

The storage layer publishes one ``ChangeEvent`` per committed insert, update
or delete. Views that need to refresh (kitchen orders, low-stock alerts)
subscribe to a table and get a ``Subscription`` handle back; dropping the
view means calling ``unsubscribe()`` or leaving the ``with`` block.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

ALL_TABLES = "*"

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    row: dict = field(default_factory=dict)


Callback = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, callback: Callback):
        self._feed = feed
        self.table = table
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()
        return False


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, table: str, callback: Callback) -> Subscription:
        sub = Subscription(self, table, callback)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.table == table)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [
                s for s in self._subscriptions if s.table in (event.table, ALL_TABLES)
            ]

        for sub in targets:
            try:
                sub.callback(event)
            except Exception:
                # a broken listener must not fail the write that triggered it
                logger.exception("Change listener failed for %s %s", event.event, event.table)
