"""
SQLAlchemy-backed storage service for the workspace.

Four collections (notes, tasks, events, note_images), all scoped by the
anonymous workspace id. Every committed write publishes ChangeEvents to the
storage's ChangeFeed so open sessions can refetch.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Generator, Iterable, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import asc, desc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..database import (
    Base,
    Event as EventORM,
    Note as NoteORM,
    NoteImage as NoteImageORM,
    Task as TaskORM,
    create_engine_for_url,
    get_engine,
    get_session_factory,
)
from .change_feed import ChangeFeed
from .embeddings import decode_vector, encode_vector
from .errors import NoteNotFoundError
from .models import (
    ChangeEvent,
    Event as EventDTO,
    EventCreate,
    Note as NoteDTO,
    NoteImage as NoteImageDTO,
    Task as TaskDTO,
    WorkspaceSnapshot,
    utcnow,
)

EDITABLE_NOTE_FIELDS = ("title", "content")


def _serialize_list(values: Optional[Iterable[str]]) -> Optional[str]:
    values = list(values or [])
    if not values:
        return None
    return json.dumps(values)


def _deserialize_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []


def _advance(previous: Optional[datetime]) -> datetime:
    """Current time, nudged forward if the clock has not passed ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _note_to_dto(note: NoteORM) -> NoteDTO:
    return NoteDTO(
        id=note.id,
        workspace_id=note.workspace_id,
        title=note.title,
        content=note.content or "",
        summary=note.summary,
        category=note.category,
        note_type=note.note_type,
        tags=_deserialize_list(note.tags),
        key_points=_deserialize_list(note.key_points),
        common_topics=_deserialize_list(note.common_topics),
        suggested_links=_deserialize_list(note.suggested_links),
        embedding=decode_vector(note.embedding),
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


def _task_to_dto(task: TaskORM) -> TaskDTO:
    return TaskDTO(
        id=task.id,
        note_id=task.note_id,
        workspace_id=task.workspace_id,
        text=task.text,
        completed=bool(task.completed),
        created_at=task.created_at,
    )


def _event_to_dto(event: EventORM) -> EventDTO:
    return EventDTO(
        id=event.id,
        workspace_id=event.workspace_id,
        note_id=event.note_id,
        title=event.title,
        description=event.description,
        event_date=event.event_date,
        start_time=event.start_time,
        end_time=event.end_time,
        created_at=event.created_at,
    )


def _image_to_dto(image: NoteImageORM) -> NoteImageDTO:
    return NoteImageDTO(
        id=image.id,
        workspace_id=image.workspace_id,
        note_id=image.note_id,
        image_url=image.image_url,
        created_at=image.created_at,
    )


class WorkspaceStorage:
    """
    SQLAlchemy-based storage facade used by the pipeline, sessions and routes.

    Writes are row-level and never span collections except where noted
    (delete_note clears a note's dependants in the same transaction).
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        database_url: Optional[str] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self.engine, self.session_factory = self._configure_engine(db_path, database_url)
        self.dialect = self.engine.dialect.name
        self.feed = feed or ChangeFeed()

        if self.dialect == "sqlite":
            Base.metadata.create_all(bind=self.engine)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create_note(
        self,
        workspace_id: str,
        title: str = "Untitled Note",
        content: str = "",
        tags: Optional[List[str]] = None,
        category: Optional[str] = "General",
    ) -> NoteDTO:
        now = utcnow()
        db_note = NoteORM(
            id=str(uuid4()),
            workspace_id=workspace_id,
            title=title,
            content=content,
            category=category,
            note_type="Thought",
            tags=_serialize_list(tags),
            created_at=now,
            updated_at=now,
        )
        with self._session_scope() as session:
            session.add(db_note)
            self._record(session, "notes", "INSERT", db_note.id)
            session.flush()
            return _note_to_dto(db_note)

    def get_note(self, workspace_id: str, note_id: str) -> Optional[NoteDTO]:
        with self._session_scope() as session:
            note = self._find_note(session, workspace_id, note_id)
            return _note_to_dto(note) if note else None

    def list_notes(self, workspace_id: str) -> List[NoteDTO]:
        with self._session_scope() as session:
            return [_note_to_dto(n) for n in self._query_notes(session, workspace_id)]

    def update_note_fields(
        self, workspace_id: str, note_id: str, updates: Mapping[str, str]
    ) -> NoteDTO:
        """
        Write title and/or content plus a refreshed updated_at.

        Raises:
            ValueError: for fields other than title/content
            NoteNotFoundError: if the note is gone
        """
        unknown = set(updates) - set(EDITABLE_NOTE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        with self._session_scope() as session:
            note = self._require_note(session, workspace_id, note_id)
            for field, value in updates.items():
                setattr(note, field, value)
            note.updated_at = _advance(note.updated_at)
            self._record(session, "notes", "UPDATE", note_id)
            session.flush()
            return _note_to_dto(note)

    def apply_analysis_fields(
        self,
        workspace_id: str,
        note_id: str,
        *,
        title: str,
        summary: str,
        category: str,
        note_type: str,
        tags: List[str],
        key_points: List[str],
        common_topics: List[str],
        suggested_links: List[str],
        embedding: Optional[List[float]],
    ) -> NoteDTO:
        """Write every AI-derived field and the embedding in a single update."""
        with self._session_scope() as session:
            note = self._require_note(session, workspace_id, note_id)
            note.title = title
            note.summary = summary
            note.category = category
            note.note_type = note_type
            note.tags = _serialize_list(tags)
            note.key_points = _serialize_list(key_points)
            note.common_topics = _serialize_list(common_topics)
            note.suggested_links = _serialize_list(suggested_links)
            note.embedding = encode_vector(embedding, self.dialect)
            note.updated_at = _advance(note.updated_at)
            self._record(session, "notes", "UPDATE", note_id)
            session.flush()
            return _note_to_dto(note)

    def delete_note(self, workspace_id: str, note_id: str) -> bool:
        """
        Delete a note. Its tasks and images go with it; its events stay with
        note_id cleared.
        """
        with self._session_scope() as session:
            note = self._find_note(session, workspace_id, note_id)
            if not note:
                return False

            task_count = (
                session.query(TaskORM)
                .filter(TaskORM.note_id == note_id)
                .delete(synchronize_session=False)
            )
            session.query(NoteImageORM).filter(NoteImageORM.note_id == note_id).delete(
                synchronize_session=False
            )
            event_count = (
                session.query(EventORM)
                .filter(EventORM.note_id == note_id)
                .update({EventORM.note_id: None}, synchronize_session=False)
            )
            session.delete(note)

            self._record(session, "notes", "DELETE", note_id)
            if task_count:
                self._record(session, "tasks", "DELETE")
            if event_count:
                self._record(session, "events", "UPDATE")
            return True

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def replace_tasks(self, workspace_id: str, note_id: str, texts: List[str]) -> List[TaskDTO]:
        """Delete every task of the note, then insert one task per text."""
        with self._session_scope() as session:
            self._require_note(session, workspace_id, note_id)
            removed = (
                session.query(TaskORM)
                .filter(TaskORM.note_id == note_id)
                .delete(synchronize_session=False)
            )
            if removed:
                self._record(session, "tasks", "DELETE")

            now = utcnow()
            created = []
            for text in texts:
                task = TaskORM(
                    id=str(uuid4()),
                    note_id=note_id,
                    workspace_id=workspace_id,
                    text=text,
                    completed=False,
                    created_at=now,
                )
                session.add(task)
                created.append(task)
            if created:
                self._record(session, "tasks", "INSERT")
            session.flush()
            return [_task_to_dto(t) for t in created]

    def list_tasks(self, workspace_id: str, note_id: Optional[str] = None) -> List[TaskDTO]:
        with self._session_scope() as session:
            query = session.query(TaskORM).filter(TaskORM.workspace_id == workspace_id)
            if note_id:
                query = query.filter(TaskORM.note_id == note_id)
            return [_task_to_dto(t) for t in query.order_by(asc(TaskORM.created_at)).all()]

    def set_task_completed(self, workspace_id: str, task_id: str, completed: bool) -> Optional[TaskDTO]:
        with self._session_scope() as session:
            task = (
                session.query(TaskORM)
                .filter(TaskORM.workspace_id == workspace_id, TaskORM.id == task_id)
                .one_or_none()
            )
            if not task:
                return None
            task.completed = bool(completed)
            self._record(session, "tasks", "UPDATE", task_id)
            session.flush()
            return _task_to_dto(task)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_events(self, workspace_id: str, events: Iterable[EventCreate]) -> List[EventDTO]:
        """Append events. Never deduplicates against existing rows."""
        now = utcnow()
        with self._session_scope() as session:
            created = []
            for payload in events:
                event = EventORM(
                    id=str(uuid4()),
                    workspace_id=workspace_id,
                    note_id=payload.note_id,
                    title=payload.title,
                    description=payload.description,
                    event_date=_coerce_date(payload.event_date),
                    start_time=payload.start_time,
                    end_time=payload.end_time,
                    created_at=now,
                )
                session.add(event)
                created.append(event)
            if created:
                self._record(session, "events", "INSERT")
            session.flush()
            return [_event_to_dto(e) for e in created]

    def create_event(self, workspace_id: str, payload: EventCreate) -> EventDTO:
        return self.add_events(workspace_id, [payload])[0]

    def list_events(self, workspace_id: str, on_date: Optional[date] = None) -> List[EventDTO]:
        with self._session_scope() as session:
            query = session.query(EventORM).filter(EventORM.workspace_id == workspace_id)
            if on_date:
                query = query.filter(EventORM.event_date == on_date)
            rows = query.order_by(asc(EventORM.event_date), asc(EventORM.created_at)).all()
            return [_event_to_dto(e) for e in rows]

    def delete_event(self, workspace_id: str, event_id: str) -> bool:
        with self._session_scope() as session:
            deleted = (
                session.query(EventORM)
                .filter(EventORM.workspace_id == workspace_id, EventORM.id == event_id)
                .delete(synchronize_session=False)
            )
            if deleted:
                self._record(session, "events", "DELETE", event_id)
            return bool(deleted)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def add_image(self, workspace_id: str, note_id: str, image_url: str) -> NoteImageDTO:
        with self._session_scope() as session:
            self._require_note(session, workspace_id, note_id)
            image = NoteImageORM(
                id=str(uuid4()),
                workspace_id=workspace_id,
                note_id=note_id,
                image_url=image_url,
                created_at=utcnow(),
            )
            session.add(image)
            self._record(session, "note_images", "INSERT", image.id)
            session.flush()
            return _image_to_dto(image)

    def list_images(self, workspace_id: str, note_id: str) -> List[NoteImageDTO]:
        with self._session_scope() as session:
            rows = (
                session.query(NoteImageORM)
                .filter(NoteImageORM.workspace_id == workspace_id, NoteImageORM.note_id == note_id)
                .order_by(asc(NoteImageORM.created_at))
                .all()
            )
            return [_image_to_dto(i) for i in rows]

    def delete_image(self, workspace_id: str, image_id: str) -> bool:
        with self._session_scope() as session:
            deleted = (
                session.query(NoteImageORM)
                .filter(NoteImageORM.workspace_id == workspace_id, NoteImageORM.id == image_id)
                .delete(synchronize_session=False)
            )
            if deleted:
                self._record(session, "note_images", "DELETE", image_id)
            return bool(deleted)

    # ------------------------------------------------------------------
    # Whole-workspace read
    # ------------------------------------------------------------------

    def fetch_workspace(self, workspace_id: str) -> WorkspaceSnapshot:
        """Read notes, tasks and events for one workspace in a single session."""
        started = utcnow()
        with self._session_scope() as session:
            notes = [_note_to_dto(n) for n in self._query_notes(session, workspace_id)]
            tasks = [
                _task_to_dto(t)
                for t in session.query(TaskORM)
                .filter(TaskORM.workspace_id == workspace_id)
                .order_by(asc(TaskORM.created_at))
                .all()
            ]
            events = [
                _event_to_dto(e)
                for e in session.query(EventORM)
                .filter(EventORM.workspace_id == workspace_id)
                .order_by(asc(EventORM.event_date), asc(EventORM.created_at))
                .all()
            ]
        return WorkspaceSnapshot(
            workspace_id=workspace_id,
            notes=notes,
            tasks=tasks,
            events=events,
            fetched_at=started,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _query_notes(self, session: Session, workspace_id: str) -> List[NoteORM]:
        return (
            session.query(NoteORM)
            .filter(NoteORM.workspace_id == workspace_id)
            .order_by(desc(NoteORM.updated_at), desc(NoteORM.created_at))
            .all()
        )

    def _find_note(self, session: Session, workspace_id: str, note_id: str) -> Optional[NoteORM]:
        return (
            session.query(NoteORM)
            .filter(NoteORM.workspace_id == workspace_id, NoteORM.id == note_id)
            .one_or_none()
        )

    def _require_note(self, session: Session, workspace_id: str, note_id: str) -> NoteORM:
        note = self._find_note(session, workspace_id, note_id)
        if not note:
            raise NoteNotFoundError(note_id)
        return note

    @staticmethod
    def _record(session: Session, table: str, kind: str, row_id: Optional[str] = None) -> None:
        session.info.setdefault("changes", []).append(
            ChangeEvent(table=table, kind=kind, row_id=row_id)
        )

    def _configure_engine(
        self,
        db_path: Optional[Path],
        database_url: Optional[str],
    ) -> tuple[Engine, sessionmaker]:
        if database_url:
            engine = create_engine_for_url(database_url)
        elif db_path:
            resolved = Path(db_path).resolve()
            engine = create_engine_for_url(f"sqlite:///{resolved}")
        else:
            return get_engine(), get_session_factory()

        factory = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )
        return engine, factory

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
            changes: List[ChangeEvent] = session.info.pop("changes", [])
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        # Only committed work is announced.
        for change in changes:
            self.feed.publish(change)
