"""
Derived-state reconciliation: apply an AnalysisResult to a note.

The steps run strictly in order, each as its own committed store operation:

    1. embedding    embed "<improved_title> <summary>"
    2. note_fields  write every analysis field + embedding, advance updated_at
    3. tasks        delete all of the note's tasks, insert one per action item
    4. events       append one event per suggested event (no deduplication)
    5. refresh      ask the caller to refetch the workspace

There is no transaction across steps and nothing is rolled back. If step 3
fails after step 2 committed, the note carries fresh analysis fields next to
its old tasks until the next successful analysis. ReconcileError reports the
failing step and the steps already persisted so callers can say so.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, Optional

from .analyzer import AnalysisResult
from .embeddings import EmbeddingsService, build_analysis_embedding_text
from .errors import ReconcileError
from .models import EventCreate, Note
from .storage import WorkspaceStorage

logger = logging.getLogger(__name__)

RECONCILE_STEPS = ("embedding", "note_fields", "tasks", "events", "refresh")


class DerivedStateReconciler:
    def __init__(self, storage: WorkspaceStorage, embeddings: EmbeddingsService):
        self.storage = storage
        self.embeddings = embeddings

    def reconcile(
        self,
        workspace_id: str,
        note_id: str,
        result: AnalysisResult,
        refresh: Optional[Callable[[], None]] = None,
    ) -> Note:
        """
        Apply ``result`` to ``note_id``.

        Returns:
            The note as written in step 2

        Raises:
            ReconcileError: wrapping the first failing step
        """
        completed: List[str] = []
        step = RECONCILE_STEPS[0]
        logger.info("reconciling analysis for note %s", note_id)

        try:
            embedding = self.embeddings.embed_text(
                build_analysis_embedding_text(result.improved_title, result.summary)
            )
            completed.append(step)

            step = "note_fields"
            note = self.storage.apply_analysis_fields(
                workspace_id,
                note_id,
                title=result.improved_title,
                summary=result.summary,
                category=result.category,
                note_type=result.note_type,
                tags=result.tags,
                key_points=result.key_points,
                common_topics=result.common_topics,
                suggested_links=result.suggested_links,
                embedding=embedding,
            )
            completed.append(step)

            step = "tasks"
            self.storage.replace_tasks(workspace_id, note_id, result.action_items)
            completed.append(step)

            step = "events"
            if result.suggested_events:
                self.storage.add_events(
                    workspace_id,
                    [
                        EventCreate(
                            title=ev.title,
                            event_date=date.fromisoformat(ev.date),
                            description=ev.description or None,
                            note_id=note_id,
                        )
                        for ev in result.suggested_events
                    ],
                )
            completed.append(step)

            step = "refresh"
            if refresh is not None:
                refresh()
            completed.append(step)
        except Exception as e:
            if completed:
                logger.warning(
                    "note %s partially reconciled: %s persisted, '%s' failed (not rolled back)",
                    note_id,
                    ", ".join(completed),
                    step,
                )
            else:
                logger.error("reconcile of note %s failed before any write: %s", note_id, e)
            raise ReconcileError(step, completed, e, note_id=note_id) from e

        logger.info(
            "note %s reconciled: %d tasks, %d events appended",
            note_id,
            len(result.action_items),
            len(result.suggested_events),
        )
        return note
