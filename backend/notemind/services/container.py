"""
Dependency injection container for backend services.

We store a single Services instance on the Flask app (app.extensions["services"]).
Routes can then fetch dependencies via get_services() which makes route tests able
to inject fakes without importing/initializing global singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..config import Config
from .analyzer import NoteAnalyzer
from .embeddings import EmbeddingsService
from .github_export import GithubNoteExporter
from .note_chat import NoteChatService
from .pipeline import NoteIntelligencePipeline
from .reconciler import DerivedStateReconciler
from .session import WorkspaceSession
from .storage import WorkspaceStorage


@dataclass(frozen=True)
class Services:
    storage: WorkspaceStorage
    embeddings: EmbeddingsService
    analyzer: NoteAnalyzer
    pipeline: NoteIntelligencePipeline
    chat: NoteChatService
    exporter: GithubNoteExporter

    def open_session(self, workspace_id: str, **kwargs) -> WorkspaceSession:
        """
        Start a live session for one workspace on the shared storage and pipeline.

        The session is subscribed to changes and loaded before it is returned;
        callers own it and must close() it (or use it as a context manager).
        """
        session = WorkspaceSession(workspace_id, self.storage, self.pipeline, **kwargs)
        session.start()
        return session


def build_services(
    storage: WorkspaceStorage,
    embeddings,
    analyzer,
    chat=None,
    exporter=None,
) -> Services:
    """Assemble a container around the given collaborators (tests pass fakes)."""
    reconciler = DerivedStateReconciler(storage, embeddings)
    return Services(
        storage=storage,
        embeddings=embeddings,
        analyzer=analyzer,
        pipeline=NoteIntelligencePipeline(storage, analyzer, reconciler),
        chat=chat,
        exporter=exporter or GithubNoteExporter(),
    )


def create_services(*, database_url: Optional[str] = None) -> Services:
    """
    Build the production Services container.

    Args:
        database_url: Optional override for database URL (useful for tests).
    """
    Config.validate()
    storage = WorkspaceStorage(database_url=database_url) if database_url else WorkspaceStorage()
    return build_services(
        storage=storage,
        embeddings=EmbeddingsService(),
        analyzer=NoteAnalyzer(),
        chat=NoteChatService(),
    )


def get_services() -> Services:
    """
    Fetch the Services container from the current Flask app.

    Raises:
        RuntimeError if services have not been attached to the app.
    """
    services = current_app.extensions.get("services")
    if services is None:
        raise RuntimeError('Services not configured. Expected app.extensions["services"].')
    return services
