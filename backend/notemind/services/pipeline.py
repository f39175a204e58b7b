"""
Note intelligence pipeline: extraction -> embedding -> reconcile.

Holds the per-note "analysis in progress" guard. A second request for a
note that is already being analyzed is rejected immediately, never queued.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Callable, Optional, Set

from .analyzer import NoteAnalyzer
from .errors import AnalysisInProgressError, NoteNotFoundError
from .models import Note
from .reconciler import DerivedStateReconciler
from .storage import WorkspaceStorage

logger = logging.getLogger(__name__)


class NoteIntelligencePipeline:
    def __init__(
        self,
        storage: WorkspaceStorage,
        analyzer: NoteAnalyzer,
        reconciler: DerivedStateReconciler,
    ):
        self.storage = storage
        self.analyzer = analyzer
        self.reconciler = reconciler
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    def is_analyzing(self, note_id: str) -> bool:
        with self._lock:
            return note_id in self._in_flight

    def analyze_note(
        self,
        workspace_id: str,
        note_id: str,
        refresh: Optional[Callable[[], None]] = None,
        reference_date: Optional[date] = None,
    ) -> Optional[Note]:
        """
        Analyze the note's current content and reconcile the result.

        Returns:
            The updated note, or None when the note was deleted while the
            extraction call was in flight (the result is discarded).

        Raises:
            AnalysisInProgressError: the note is already being analyzed
            NoteNotFoundError: the note does not exist
            EmptyInputError / ExtractionError: nothing was written
            ReconcileError: see reconciler for the partial-failure window
        """
        with self._lock:
            if note_id in self._in_flight:
                raise AnalysisInProgressError(note_id)
            self._in_flight.add(note_id)

        try:
            note = self.storage.get_note(workspace_id, note_id)
            if note is None:
                raise NoteNotFoundError(note_id)

            result = self.analyzer.analyze(note.content, reference_date=reference_date)

            if self.storage.get_note(workspace_id, note_id) is None:
                logger.warning("note %s was deleted during analysis; discarding result", note_id)
                return None

            return self.reconciler.reconcile(workspace_id, note_id, result, refresh=refresh)
        finally:
            with self._lock:
                self._in_flight.discard(note_id)
