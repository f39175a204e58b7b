"""
Change propagation: any committed change on notes, tasks or events triggers a
full refetch of the workspace.

The listener never looks at the change payload. Bursts can be coalesced with
a debounce, and at most one refetch runs at a time (a change that lands
during a refetch schedules exactly one more), but every refetch is complete
on its own.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence

from .change_feed import WATCHED_TABLES, ChangeFeed, Subscription
from .models import ChangeEvent
from .timers import Debouncer, TimerFactory, thread_timer

logger = logging.getLogger(__name__)


class ChangePropagationListener:
    def __init__(
        self,
        feed: ChangeFeed,
        refresh: Callable[[], None],
        debounce: float = 0.0,
        timer_factory: TimerFactory = thread_timer,
        tables: Sequence[str] = WATCHED_TABLES,
    ):
        self.feed = feed
        self.refresh = refresh
        self.tables = tuple(tables)
        self.refetch_count = 0
        self._subscriptions: List[Subscription] = []
        self._debouncer: Optional[Debouncer] = (
            Debouncer(debounce, timer_factory) if debounce > 0 else None
        )
        self._lock = threading.Lock()
        self._started = False
        self._stopped = False
        self._in_flight = False
        self._rerun = False

    @property
    def active(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        """Subscribe to every watched table. Subsequent calls, and calls after stop(), are no-ops."""
        with self._lock:
            if self._started or self._stopped:
                return
            self._started = True
        self._subscriptions = [self.feed.subscribe(table, self._on_change) for table in self.tables]
        logger.info("listening for changes on %s", ", ".join(self.tables))

    def stop(self) -> None:
        """Release the subscriptions. Safe to call more than once."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []
        if self._debouncer is not None:
            self._debouncer.cancel()
        logger.info("stopped listening for changes")

    def _on_change(self, change: ChangeEvent) -> None:
        if not self.active:
            return
        logger.debug("change on %s (%s); refetching", change.table, change.kind)
        if self._debouncer is not None:
            self._debouncer.schedule(self._run_refresh)
        else:
            self._run_refresh()

    def _run_refresh(self) -> None:
        with self._lock:
            if self._in_flight:
                self._rerun = True
                return
            self._in_flight = True

        try:
            while True:
                with self._lock:
                    self._rerun = False
                    if self._stopped:
                        self._in_flight = False
                        return
                self.refetch_count += 1
                self.refresh()
                with self._lock:
                    # check and clear under one lock, or a late change is lost
                    if not self._rerun:
                        self._in_flight = False
                        return
        except Exception:
            with self._lock:
                self._in_flight = False
            raise
