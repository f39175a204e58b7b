"""
Error taxonomy for the note intelligence pipeline.

Every error carries a short ``status_message`` suitable for a status line in
the client; ``str(err)`` holds the detailed message for logs.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class NotemindError(Exception):
    """Base exception for all notemind errors."""

    status_message = "Something went wrong"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class EmptyInputError(NotemindError):
    """Raised when analysis is requested for blank text. No call is made."""

    status_message = "Write something before running analysis"


class ExtractionError(NotemindError):
    """Upstream extraction failed or returned a payload that does not fit AnalysisResult."""

    status_message = "AI analysis failed"


class EmbeddingError(NotemindError):
    """Upstream embedding call failed."""

    status_message = "Could not compute the note embedding"


class ReconcileError(NotemindError):
    """
    A reconcile step failed after zero or more earlier steps were committed.

    Completed steps are NOT rolled back: ``completed_steps`` lists what is
    already persisted, ``step`` names the one that failed.
    """

    status_message = "Analysis was only partially applied"

    def __init__(
        self,
        step: str,
        completed_steps: List[str],
        cause: BaseException,
        note_id: Optional[str] = None,
    ):
        super().__init__(
            f"reconcile step '{step}' failed for note {note_id}: {cause}",
            {"step": step, "completed_steps": list(completed_steps), "note_id": note_id},
        )
        self.step = step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        self.note_id = note_id


class PersistError(NotemindError):
    """An autosave commit failed. The local draft is kept."""

    status_message = "Not saved"


class SyncError(NotemindError):
    """Publishing notes to the external git host failed."""

    status_message = "Sync failed"

    def __init__(self, message: str, note_id: Optional[str] = None):
        super().__init__(message, {"note_id": note_id} if note_id else None)
        self.note_id = note_id


class AnalysisInProgressError(NotemindError):
    """A second analysis was requested for a note whose analysis is still running."""

    status_message = "Analysis already running for this note"

    def __init__(self, note_id: str):
        super().__init__(f"analysis already in progress for note {note_id}", {"note_id": note_id})
        self.note_id = note_id


class NoteNotFoundError(NotemindError):
    """The note does not exist or belongs to another workspace."""

    status_message = "Note not found"

    def __init__(self, note_id: str):
        super().__init__(f"note {note_id} not found", {"note_id": note_id})
        self.note_id = note_id
