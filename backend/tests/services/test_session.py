"""
Tests for WorkspaceSession: store kept current through change propagation,
autosave wiring, analysis status reporting and shutdown.
"""
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from notemind.services.container import build_services
from notemind.services.errors import ExtractionError, NoteNotFoundError
from notemind.services.models import EventCreate
from notemind.services.pipeline import NoteIntelligencePipeline
from notemind.services.reconciler import DerivedStateReconciler
from notemind.services.session import WorkspaceSession

from conftest import WORKSPACE, FakeAnalyzer, FakeEmbeddings


@pytest.fixture()
def analyzer():
    return FakeAnalyzer()


@pytest.fixture()
def session(storage, timers, analyzer):
    pipeline = NoteIntelligencePipeline(
        storage, analyzer, DerivedStateReconciler(storage, FakeEmbeddings())
    )
    with WorkspaceSession(
        WORKSPACE, storage, pipeline, autosave_delay=1.0, sync_debounce=0.0, timer_factory=timers
    ) as s:
        yield s


def test_start_loads_existing_workspace(storage, timers, analyzer):
    storage.create_note(WORKSPACE, title="before start")
    pipeline = NoteIntelligencePipeline(storage, analyzer, DerivedStateReconciler(storage, FakeEmbeddings()))

    with WorkspaceSession(WORKSPACE, storage, pipeline, timer_factory=timers) as s:
        assert [n.title for n in s.store.notes()] == ["before start"]


def test_writes_from_elsewhere_reach_the_store(session, storage):
    note = storage.create_note(WORKSPACE, title="from another client")

    assert session.store.note(note.id).title == "from another client"

    storage.create_event(WORKSPACE, EventCreate(title="e", event_date=date(2025, 3, 12)))
    assert len(session.store.events(date(2025, 3, 12))) == 1


def test_create_note_opens_it(session):
    note = session.create_note()

    assert session.selected_note_id == note.id
    assert session.store.note(note.id) is not None
    assert session.status_message == "Note created"


def test_edits_are_coalesced_into_one_write(session, storage, timers):
    note = session.create_note()
    session.edit("content", "v1")
    session.edit("content", "v2")
    assert session.save_status == "pending"

    timers.fire_all()

    assert session.save_status == "saved"
    assert session.store.note(note.id).content == "v2"


def test_open_missing_note(session):
    with pytest.raises(NoteNotFoundError):
        session.open_note("missing")


def test_analyze_flushes_pending_edits_first(session, analyzer):
    session.create_note()
    session.edit("content", "Meet Alice tomorrow at 3pm to discuss Q2 roadmap")

    note = session.analyze(reference_date=date(2025, 3, 11))

    assert analyzer.calls == ["Meet Alice tomorrow at 3pm to discuss Q2 roadmap"]
    assert note.title == "Meeting Prep"
    assert session.status_message == "Analysis complete"
    assert len(session.store.tasks(note.id)) == 2
    assert session.store.note(note.id).summary == "Prepare for Alice."


def test_analyze_failure_is_reported_not_raised(session, analyzer):
    note = session.create_note()
    session.edit("content", "x")
    analyzer.error = ExtractionError("upstream down")

    assert session.analyze() is None

    assert session.status_message == "AI analysis failed"
    assert isinstance(session.last_error, ExtractionError)
    assert session.store.note(note.id).summary is None


def test_analyze_database_error_is_reported_not_raised(session, storage, analyzer, monkeypatch):
    note = session.create_note()

    def _locked(*args, **kwargs):  # noqa: ANN001
        raise OperationalError("SELECT notes", {}, Exception("database is locked"))

    monkeypatch.setattr(storage, "get_note", _locked)

    assert session.analyze(note.id) is None

    assert session.status_message == "Could not load note"
    assert isinstance(session.last_error, OperationalError)
    assert analyzer.calls == []


def test_analyze_without_open_note(session, analyzer):
    assert session.analyze() is None
    assert analyzer.calls == []


def test_toggle_task(session, storage):
    note = session.create_note()
    task = storage.replace_tasks(WORKSPACE, note.id, ["one"])[0]

    session.toggle_task(task.id)
    assert session.store.tasks(note.id)[0].completed is True

    session.toggle_task(task.id)
    assert session.store.tasks(note.id)[0].completed is False


def test_delete_selected_note_drops_pending_edits(session, storage, timers):
    note = session.create_note()
    session.edit("content", "never saved")

    assert session.delete_note(note.id) is True
    timers.fire_all()

    assert session.selected_note_id is None
    assert session.store.note(note.id) is None
    assert storage.get_note(WORKSPACE, note.id) is None


def test_search(session, storage):
    storage.create_note(WORKSPACE, title="Roadmap")
    storage.create_note(WORKSPACE, title="Groceries")

    assert [n.title for n in session.search("road")] == ["Roadmap"]


def test_close_flushes_and_unsubscribes(storage, timers, analyzer):
    pipeline = NoteIntelligencePipeline(storage, analyzer, DerivedStateReconciler(storage, FakeEmbeddings()))
    session = WorkspaceSession(WORKSPACE, storage, pipeline, timer_factory=timers)
    session.start()
    note = session.create_note()
    session.edit("content", "last words")

    session.close()
    session.close()
    version = session.store.version

    assert storage.get_note(WORKSPACE, note.id).content == "last words"
    assert storage.feed.subscriber_count("notes") == 0
    storage.create_note(WORKSPACE)
    assert session.store.version == version


def test_services_open_a_live_session(storage, timers, analyzer):
    services = build_services(storage=storage, embeddings=FakeEmbeddings(), analyzer=analyzer)
    storage.create_note(WORKSPACE, title="already there")

    with services.open_session(WORKSPACE, timer_factory=timers) as session:
        assert session.pipeline is services.pipeline
        assert [n.title for n in session.store.notes()] == ["already there"]
        assert session.listener.active

        note = session.create_note()
        session.edit("content", "typed in the session")
        timers.fire_all()

        assert storage.get_note(WORKSPACE, note.id).content == "typed in the session"
        assert session.store.note(note.id).content == "typed in the session"

    assert storage.feed.subscriber_count("notes") == 0
