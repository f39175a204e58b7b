"""
Autosave coalescer for the note being edited.

Edits update the local draft at once and (re)arm a single delayed commit.
The commit is bound to the note it was armed for: switching notes cancels
or flushes it first, and a timer that fires for a note that is no longer
open does nothing.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Literal, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Config
from .errors import NotemindError, PersistError
from .models import Note
from .storage import WorkspaceStorage
from .timers import Debouncer, TimerFactory, thread_timer

logger = logging.getLogger(__name__)

EditableField = Literal["title", "content"]
SaveStatus = Literal["idle", "pending", "saving", "saved", "error"]


class AutosaveCoalescer:
    def __init__(
        self,
        storage: WorkspaceStorage,
        workspace_id: str,
        delay: Optional[float] = None,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.storage = storage
        self.workspace_id = workspace_id
        self.note_id: Optional[str] = None
        self.draft: Dict[str, str] = {}
        self.status: SaveStatus = "idle"
        self.last_error: Optional[PersistError] = None
        self._dirty: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._debouncer = Debouncer(
            Config.AUTOSAVE_DELAY_SECONDS if delay is None else delay, timer_factory
        )

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def open(self, note: Note, flush_pending: bool = True) -> None:
        """Make ``note`` the editing target. Pending edits of the previous note are flushed (or discarded)."""
        self._release(flush_pending)
        with self._lock:
            self.note_id = note.id
            self.draft = {"title": note.title, "content": note.content}
            self._dirty = {}
            self.status = "idle"
            self.last_error = None

    def close(self, flush_pending: bool = True) -> None:
        self._release(flush_pending)
        with self._lock:
            self.note_id = None
            self.draft = {}
            self._dirty = {}
            self.status = "idle"

    def edit(self, field: EditableField, value: str) -> None:
        if field not in ("title", "content"):
            raise ValueError(f"Cannot autosave field '{field}'")
        with self._lock:
            if self.note_id is None:
                raise ValueError("No note is open for editing")
            note_id = self.note_id
            self.draft[field] = value
            self._dirty[field] = value
            self.status = "pending"
            self._debouncer.schedule(lambda: self._commit(note_id))

    def flush(self) -> bool:
        """
        Commit pending edits now instead of waiting for the quiet period.

        Edits left queued by a failed save have no timer behind them; they
        are retried here as well.
        """
        if self._debouncer.flush():
            return True
        with self._lock:
            note_id = self.note_id
            if note_id is None or not self._dirty:
                return False
        self._commit(note_id)
        return True

    def discard(self) -> bool:
        """Drop pending edits without writing them. The draft keeps the typed text."""
        cancelled = self._debouncer.cancel()
        with self._lock:
            had_edits = bool(self._dirty)
            self._dirty = {}
            if self.status == "pending":
                self.status = "idle"
        return cancelled or had_edits

    def _release(self, flush_pending: bool) -> None:
        if flush_pending:
            self.flush()
            with self._lock:
                if self._dirty:
                    logger.error(
                        "unsaved edits to %s of note %s dropped after a failed save",
                        ", ".join(sorted(self._dirty)),
                        self.note_id,
                    )
        else:
            if self.discard():
                logger.info("discarded unsaved edits for note %s", self.note_id)

    def _commit(self, note_id: str) -> None:
        with self._lock:
            if note_id != self.note_id:
                logger.warning("autosave armed for note %s fired after switching away; ignored", note_id)
                return
            updates = dict(self._dirty)
            self._dirty = {}
            if not updates:
                return
            self.status = "saving"

        try:
            self.storage.update_note_fields(self.workspace_id, note_id, updates)
        except (SQLAlchemyError, NotemindError) as e:
            error = PersistError(f"autosave of note {note_id} failed: {e}", {"note_id": note_id})
            logger.warning("%s", error)
            with self._lock:
                self.last_error = error
                if note_id == self.note_id:
                    self.status = "error"
                    # Keep the failed values queued behind any newer edits.
                    for field, value in updates.items():
                        self._dirty.setdefault(field, value)
            return

        with self._lock:
            if note_id == self.note_id:
                # a newer edit armed during the write is still pending
                self.status = "pending" if self._dirty else "saved"
                self.last_error = None
