"""
Data models for the workspace.

Uses Pydantic for validation and serialization. These are the read-side
DTOs handed out by storage and held by the workspace state store.
"""

from datetime import date, datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


ChangeKind = Literal["INSERT", "UPDATE", "DELETE"]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Note(BaseModel):
    """Complete note with all fields"""
    id: str
    workspace_id: str
    title: str = "Untitled Note"
    content: str = ""
    summary: Optional[str] = None
    category: Optional[str] = "General"
    note_type: Optional[str] = "Thought"
    tags: List[str] = Field(default_factory=list)
    key_points: List[str] = Field(default_factory=list)
    common_topics: List[str] = Field(default_factory=list)
    suggested_links: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None
    created_at: datetime
    updated_at: datetime


class Task(BaseModel):
    """Action item belonging to exactly one note"""
    id: str
    note_id: str
    workspace_id: str
    text: str
    completed: bool = False
    created_at: datetime


class Event(BaseModel):
    """Calendar event, optionally linked to the note that spawned it"""
    id: str
    workspace_id: str
    note_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    event_date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    created_at: datetime


class NoteImage(BaseModel):
    """Image attachment row"""
    id: str
    workspace_id: str
    note_id: str
    image_url: str
    created_at: datetime


class EventCreate(BaseModel):
    """Payload for a user-created calendar event"""
    title: str = Field(..., min_length=1)
    event_date: date
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    note_id: Optional[str] = None


class NoteUpdate(BaseModel):
    """Partial title/content update"""
    title: Optional[str] = None
    content: Optional[str] = None


class ChangeEvent(BaseModel):
    """A committed change on one of the watched collections."""
    table: str
    kind: ChangeKind
    row_id: Optional[str] = None


class WorkspaceSnapshot(BaseModel):
    """Everything one workspace owns, as of a single refetch"""
    workspace_id: str
    notes: List[Note] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utcnow)


class CalendarDay(BaseModel):
    """Notes touched on a day plus events scheduled for it"""
    day: date
    notes: List[Note] = Field(default_factory=list)
    events: List[Event] = Field(default_factory=list)


class SimilarNote(BaseModel):
    """Semantic neighbour of a note"""
    note: Note
    score: float = Field(description="Normalised cosine similarity in [0, 1]")
