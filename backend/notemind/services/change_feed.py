"""
In-process change notification for the workspace tables.

Storage publishes one ChangeEvent per affected row group after each
committed transaction. Subscribers register per table name and receive every
event for that table; no payload beyond table/kind/row id is promised, and
listeners are expected to refetch rather than patch.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List

from .models import ChangeEvent

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]

WATCHED_TABLES = ("notes", "tasks", "events")


class Subscription:
    """Handle returned by ChangeFeed.subscribe; unsubscribe() may be called any number of times."""

    def __init__(self, feed: "ChangeFeed", table: str, callback: ChangeCallback):
        self.feed = feed
        self.table = table
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.feed._remove(self)


class ChangeFeed:
    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        sub = Subscription(self, table, callback)
        with self._lock:
            self._subscribers.setdefault(table, []).append(sub)
        logger.debug("subscribed to %s changes (%d subscribers)", table, self.subscriber_count(table))
        return sub

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, []))

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = list(self._subscribers.get(change.table, []))

        for sub in targets:
            if not sub.active:
                continue
            try:
                sub.callback(change)
            except Exception:
                # One broken subscriber must not stop delivery to the others.
                logger.exception("change subscriber for %s failed on %s", change.table, change.kind)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.table, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(sub.table, None)
