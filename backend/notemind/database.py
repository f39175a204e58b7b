"""
Central SQLAlchemy models and session utilities.

These definitions power both Alembic migrations and runtime ORM queries.
"""

import logging
import os
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    TIMESTAMP,
    create_engine,
    event,
)
from sqlalchemy.types import TypeDecorator, UserDefinedType
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.sql import func

from .config import Config

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


class _PGVector(UserDefinedType):
    """pgvector column type (declared without adding third-party dependencies)."""

    cache_ok = True

    def __init__(self, dims: int):
        self.dims = dims

    def get_col_spec(self, **kw):
        return f"vector({self.dims})"


class VectorEmbedding(TypeDecorator):
    """
    Cross-dialect embedding type:
    - SQLite: stored as TEXT (JSON list of floats)
    - Postgres: stored as pgvector vector(dims)
    """

    impl = Text
    cache_ok = True

    def __init__(self, dims: int, **kwargs):
        super().__init__(**kwargs)
        self.dims = dims

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(_PGVector(self.dims))
        return dialect.type_descriptor(Text())


class Note(Base):
    """
    Notes table, scoped by the anonymous workspace id.

    List-valued fields (tags, key_points, ...) are stored as JSON text so the
    schema works on both SQLite (dev) and PostgreSQL (prod).
    """
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True)
    workspace_id = Column(String(255), nullable=False, index=True)
    title = Column(Text, nullable=False, default="Untitled Note")
    content = Column(Text, nullable=False, default="")

    # AI-derived fields
    summary = Column(Text, nullable=True)
    category = Column(String(255), nullable=True, default="General")
    note_type = Column(String(100), nullable=True, default="Thought")
    tags = Column(Text, nullable=True)
    key_points = Column(Text, nullable=True)
    common_topics = Column(Text, nullable=True)
    suggested_links = Column(Text, nullable=True)
    embedding = Column(VectorEmbedding(Config.EMBEDDING_DIMENSIONS), nullable=True)

    # Timestamps (updated_at is advanced by the storage layer, never by the DB)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_notes_workspace_updated", "workspace_id", "updated_at"),
    )


class Task(Base):
    """Action items extracted from a note. Owned by the note (cascade delete)."""
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True)
    note_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True)
    workspace_id = Column(String(255), nullable=False, index=True)
    text = Column(Text, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_tasks_workspace_note", "workspace_id", "note_id"),
    )


class Event(Base):
    """
    Calendar events. The note reference is historical only: deleting the note
    sets it to NULL instead of deleting the event.
    """
    __tablename__ = "events"

    id = Column(String(36), primary_key=True)
    workspace_id = Column(String(255), nullable=False, index=True)
    note_id = Column(String(36), ForeignKey("notes.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(Date, nullable=False)
    start_time = Column(String(20), nullable=True)
    end_time = Column(String(20), nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_events_workspace_date", "workspace_id", "event_date"),
    )


class NoteImage(Base):
    """Image attachment rows. Binary storage lives elsewhere; only the URL is kept."""
    __tablename__ = "note_images"

    id = Column(String(36), primary_key=True)
    workspace_id = Column(String(255), nullable=False, index=True)
    note_id = Column(String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())


def get_database_url() -> str:
    """
    Get database URL from environment, defaulting to SQLite.

    Returns:
        Database connection string
    """
    database_url = os.getenv("DATABASE_URL")

    if database_url:
        # PostgreSQL
        return database_url

    flask_env = os.getenv("FLASK_ENV", "development")
    if flask_env == "production":
        # In production, we must have DATABASE_URL. Do not fallback to SQLite.
        raise ValueError("DATABASE_URL environment variable is not set in production environment!")

    # SQLite (development)
    db_path = Config.BASE_DIR / ".notemind.db"
    logger.warning("using SQLite database at %s", db_path)
    return f"sqlite:///{db_path}"


def get_engine():
    """Get (and lazily create) the shared SQLAlchemy engine."""
    global _engine
    if _engine is None:
        _engine = create_engine_for_url()
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the configured session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )
    return _SessionFactory


def create_engine_for_url(database_url: Optional[str] = None) -> Engine:
    """Build a SQLAlchemy engine for the given URL (or default environment)."""
    url = database_url or get_database_url()
    engine = create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
    )

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)

    return engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """
    Apply SQLite pragmas for better consistency (WAL, foreign keys).

    Foreign keys must be on for the task/image cascade and the event SET NULL.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()
