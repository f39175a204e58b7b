"""
WorkspaceSession: one open client of one workspace.

Wires the state store, change listener and autosave coalescer together and
exposes the operations a client performs. Every operation leaves a short
``status_message``; failures are reported there and in ``last_error`` rather
than propagated, so a session never dies on a failed call.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Config
from .autosave import AutosaveCoalescer, EditableField
from .errors import NotemindError, NoteNotFoundError
from .models import Event, EventCreate, Note, Task
from .pipeline import NoteIntelligencePipeline
from .state import WorkspaceStateStore
from .storage import WorkspaceStorage
from .sync import ChangePropagationListener
from .timers import TimerFactory, thread_timer

logger = logging.getLogger(__name__)


class WorkspaceSession:
    def __init__(
        self,
        workspace_id: str,
        storage: WorkspaceStorage,
        pipeline: NoteIntelligencePipeline,
        autosave_delay: Optional[float] = None,
        sync_debounce: Optional[float] = None,
        timer_factory: TimerFactory = thread_timer,
    ):
        self.workspace_id = workspace_id
        self.storage = storage
        self.pipeline = pipeline
        self.store = WorkspaceStateStore(workspace_id)
        self.autosave = AutosaveCoalescer(
            storage, workspace_id, delay=autosave_delay, timer_factory=timer_factory
        )
        self.listener = ChangePropagationListener(
            storage.feed,
            self.refresh,
            debounce=Config.SYNC_DEBOUNCE_SECONDS if sync_debounce is None else sync_debounce,
            timer_factory=timer_factory,
        )
        self.selected_note_id: Optional[str] = None
        self.status_message = ""
        self.last_error: Optional[Exception] = None
        self._closed = False

    def __enter__(self) -> "WorkspaceSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self.listener.start()
        self.refresh()

    def close(self) -> None:
        """Flush pending edits and release the change subscription. Idempotent."""
        if self._closed:
            return
        self.autosave.close(flush_pending=True)
        self.listener.stop()
        self._closed = True

    def refresh(self) -> None:
        """Refetch the whole workspace and replace the store."""
        if self._closed:
            return
        try:
            snapshot = self.storage.fetch_workspace(self.workspace_id)
        except SQLAlchemyError as e:
            self._fail(e, "Could not load workspace")
            return
        if self._closed:
            logger.debug("session closed during refetch; dropping snapshot")
            return
        self.store.replace(snapshot)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def open_note(self, note_id: str, flush_pending: bool = True) -> Note:
        note = self.store.note(note_id) or self.storage.get_note(self.workspace_id, note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        self.autosave.open(note, flush_pending=flush_pending)
        self.selected_note_id = note.id
        return note

    def edit(self, field: EditableField, value: str) -> None:
        self.autosave.edit(field, value)

    def flush(self) -> bool:
        return self.autosave.flush()

    @property
    def save_status(self) -> str:
        return self.autosave.status

    def create_note(self) -> Optional[Note]:
        try:
            note = self.storage.create_note(self.workspace_id)
        except SQLAlchemyError as e:
            self._fail(e, "Could not create note")
            return None
        self.open_note(note.id)
        self._ok("Note created")
        return note

    def delete_note(self, note_id: str) -> bool:
        if note_id == self.selected_note_id:
            self.autosave.close(flush_pending=False)
            self.selected_note_id = None
        try:
            deleted = self.storage.delete_note(self.workspace_id, note_id)
        except SQLAlchemyError as e:
            self._fail(e, "Could not delete note")
            return False
        self._ok("Note deleted" if deleted else "Note already gone")
        return deleted

    def search(self, query: str):
        return self.store.notes(query)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, note_id: Optional[str] = None, reference_date: Optional[date] = None) -> Optional[Note]:
        """
        Run analysis on ``note_id`` (default: the open note).

        Pending edits of the open note are committed first so the analysis
        sees what the user typed.
        """
        target = note_id or self.selected_note_id
        if target is None:
            self._ok("Open a note to analyze it")
            return None
        if target == self.selected_note_id:
            self.autosave.flush()

        try:
            note = self.pipeline.analyze_note(
                self.workspace_id, target, refresh=self.refresh, reference_date=reference_date
            )
        except NotemindError as e:
            self._fail(e, e.status_message)
            return None
        except SQLAlchemyError as e:
            self._fail(e, "Could not load note")
            return None

        if note is None:
            self._ok("Note was deleted before analysis finished")
            return None
        self._ok("Analysis complete")
        return note

    # ------------------------------------------------------------------
    # Tasks and events
    # ------------------------------------------------------------------

    def toggle_task(self, task_id: str) -> Optional[Task]:
        task = next((t for t in self.store.tasks() if t.id == task_id), None)
        if task is None:
            self._ok("Task not found")
            return None
        try:
            return self.storage.set_task_completed(self.workspace_id, task_id, not task.completed)
        except SQLAlchemyError as e:
            self._fail(e, "Could not update task")
            return None

    def create_event(self, payload: EventCreate) -> Optional[Event]:
        try:
            event = self.storage.create_event(self.workspace_id, payload)
        except SQLAlchemyError as e:
            self._fail(e, "Could not create event")
            return None
        self._ok("Event added")
        return event

    def delete_event(self, event_id: str) -> bool:
        try:
            deleted = self.storage.delete_event(self.workspace_id, event_id)
        except SQLAlchemyError as e:
            self._fail(e, "Could not delete event")
            return False
        self._ok("Event deleted" if deleted else "Event already gone")
        return deleted

    def _ok(self, message: str) -> None:
        self.status_message = message
        self.last_error = None

    def _fail(self, error: Exception, message: str) -> None:
        logger.error("%s: %s", message, error)
        self.status_message = message
        self.last_error = error
