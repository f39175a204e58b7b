"""
Workspace state store: the read-only, per-session projection of one
workspace's notes, tasks and events.

The only way to change it is ``replace()`` with a complete snapshot from a
refetch. There are no per-field mutators and no merge logic.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import List, Optional

from .embeddings import cosine_similarity, normalize_similarity
from .models import CalendarDay, Event, Note, SimilarNote, Task, WorkspaceSnapshot

logger = logging.getLogger(__name__)


class WorkspaceStateStore:
    def __init__(self, workspace_id: str):
        self.workspace_id = workspace_id
        self.version = 0
        self._snapshot = WorkspaceSnapshot(workspace_id=workspace_id)
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> WorkspaceSnapshot:
        with self._lock:
            return self._snapshot

    def replace(self, snapshot: WorkspaceSnapshot) -> bool:
        """
        Swap in a new snapshot wholesale.

        A snapshot whose read started before the current one's is stale and
        is dropped. Returns True if the snapshot was applied.
        """
        if snapshot.workspace_id != self.workspace_id:
            raise ValueError(
                f"snapshot for workspace {snapshot.workspace_id} cannot replace {self.workspace_id}"
            )
        with self._lock:
            if self.version and snapshot.fetched_at < self._snapshot.fetched_at:
                logger.warning("discarding stale workspace snapshot from %s", snapshot.fetched_at)
                return False
            self._snapshot = snapshot
            self.version += 1
            return True

    def notes(self, query: Optional[str] = None) -> List[Note]:
        """Notes, most recently updated first, optionally filtered by a case-insensitive substring."""
        notes = self.snapshot.notes
        if not query:
            return list(notes)
        q = query.lower()
        return [
            n
            for n in notes
            if q in n.title.lower()
            or q in n.content.lower()
            or (n.summary and q in n.summary.lower())
        ]

    def note(self, note_id: str) -> Optional[Note]:
        return next((n for n in self.snapshot.notes if n.id == note_id), None)

    def tasks(self, note_id: Optional[str] = None) -> List[Task]:
        tasks = self.snapshot.tasks
        if note_id is None:
            return list(tasks)
        return [t for t in tasks if t.note_id == note_id]

    def events(self, on_date: Optional[date] = None) -> List[Event]:
        events = self.snapshot.events
        if on_date is None:
            return list(events)
        return [e for e in events if e.event_date == on_date]

    def calendar_day(self, day: date) -> CalendarDay:
        snapshot = self.snapshot
        return CalendarDay(
            day=day,
            notes=[n for n in snapshot.notes if n.updated_at.date() == day],
            events=[e for e in snapshot.events if e.event_date == day],
        )

    def similar_notes(self, note_id: str, limit: int = 5) -> List[SimilarNote]:
        """Other notes ranked by embedding similarity. Notes without an embedding are skipped."""
        target = self.note(note_id)
        if target is None or not target.embedding:
            return []

        scored = []
        for other in self.snapshot.notes:
            if other.id == note_id or not other.embedding:
                continue
            sim = normalize_similarity(cosine_similarity(target.embedding, other.embedding))
            scored.append(SimilarNote(note=other, score=sim))

        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[: max(0, limit)]
