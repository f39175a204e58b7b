"""
Tests for the autosave coalescer. Timers are driven by hand through
FakeTimerFactory.
"""
from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from notemind.services.autosave import AutosaveCoalescer
from notemind.services.errors import PersistError

from conftest import WORKSPACE


@pytest.fixture()
def coalescer(storage, timers):
    return AutosaveCoalescer(storage, WORKSPACE, delay=1.0, timer_factory=timers)


def _count_note_updates(storage):
    updates = []
    storage.feed.subscribe(
        "notes", lambda change: updates.append(change.row_id) if change.kind == "UPDATE" else None
    )
    return updates


def test_two_quick_edits_commit_once_with_latest_value(storage, timers, coalescer):
    note = storage.create_note(WORKSPACE)
    updates = _count_note_updates(storage)
    coalescer.open(note)

    coalescer.edit("content", "v1")
    coalescer.edit("content", "v2")

    assert coalescer.draft["content"] == "v2"
    assert coalescer.status == "pending"
    assert len(timers.live) == 1
    assert storage.get_note(WORKSPACE, note.id).content == ""

    assert timers.fire_all() == 1
    assert updates == [note.id]
    assert storage.get_note(WORKSPACE, note.id).content == "v2"
    assert coalescer.status == "saved"


def test_title_and_content_edits_are_committed_together(storage, timers, coalescer):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)

    coalescer.edit("title", "Groceries")
    coalescer.edit("content", "milk")
    timers.fire_all()

    saved = storage.get_note(WORKSPACE, note.id)
    assert (saved.title, saved.content) == ("Groceries", "milk")


def test_switching_notes_flushes_to_the_old_note(storage, timers, coalescer):
    note_a = storage.create_note(WORKSPACE, title="A")
    note_b = storage.create_note(WORKSPACE, title="B")
    coalescer.open(note_a)
    coalescer.edit("content", "x")

    coalescer.open(note_b)

    assert storage.get_note(WORKSPACE, note_a.id).content == "x"
    assert storage.get_note(WORKSPACE, note_b.id).content == ""
    assert coalescer.note_id == note_b.id
    assert coalescer.draft == {"title": "B", "content": ""}
    assert timers.fire_all() == 0


def test_switching_notes_can_discard_pending_edits(storage, timers, coalescer):
    note_a = storage.create_note(WORKSPACE, title="A")
    note_b = storage.create_note(WORKSPACE, title="B")
    coalescer.open(note_a)
    coalescer.edit("content", "x")

    coalescer.open(note_b, flush_pending=False)
    timers.fire_all()

    assert storage.get_note(WORKSPACE, note_a.id).content == ""
    assert storage.get_note(WORKSPACE, note_b.id).content == ""


def test_stale_timer_for_previous_note_does_nothing(storage, timers, coalescer):
    note_a = storage.create_note(WORKSPACE, title="A")
    note_b = storage.create_note(WORKSPACE, title="B")
    coalescer.open(note_a)
    coalescer.edit("content", "x")
    stale = timers.live[0]

    coalescer.open(note_b, flush_pending=False)
    # The cancelled timer's thread may already be running its callback.
    stale.fire()

    assert storage.get_note(WORKSPACE, note_a.id).content == ""
    assert storage.get_note(WORKSPACE, note_b.id).content == ""


def test_failed_commit_keeps_draft_and_reports_error(storage, timers, coalescer, monkeypatch):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)
    coalescer.edit("content", "unsaved words")

    def _fail(*args, **kwargs):  # noqa: ANN001
        raise OperationalError("UPDATE notes", {}, Exception("database is locked"))

    monkeypatch.setattr(storage, "update_note_fields", _fail)
    timers.fire_all()

    assert coalescer.status == "error"
    assert isinstance(coalescer.last_error, PersistError)
    assert coalescer.draft["content"] == "unsaved words"

    monkeypatch.undo()
    coalescer.edit("title", "retry")
    timers.fire_all()

    saved = storage.get_note(WORKSPACE, note.id)
    assert (saved.title, saved.content) == ("retry", "unsaved words")
    assert coalescer.status == "saved"
    assert coalescer.last_error is None


def _fail_once(storage, monkeypatch):
    def _fail(*args, **kwargs):  # noqa: ANN001
        raise OperationalError("UPDATE notes", {}, Exception("database is locked"))

    monkeypatch.setattr(storage, "update_note_fields", _fail)


def test_flush_retries_edits_left_by_failed_save(storage, timers, coalescer, monkeypatch):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)
    coalescer.edit("content", "unsaved words")
    _fail_once(storage, monkeypatch)
    timers.fire_all()
    monkeypatch.undo()

    assert coalescer.flush() is True
    assert storage.get_note(WORKSPACE, note.id).content == "unsaved words"
    assert coalescer.status == "saved"
    assert coalescer.flush() is False


def test_switching_notes_after_failed_save_writes_to_old_note(storage, timers, coalescer, monkeypatch):
    note_a = storage.create_note(WORKSPACE, title="A")
    note_b = storage.create_note(WORKSPACE, title="B")
    coalescer.open(note_a)
    coalescer.edit("content", "precious text")
    _fail_once(storage, monkeypatch)
    timers.fire_all()
    assert coalescer.status == "error"
    monkeypatch.undo()

    coalescer.open(note_b)

    assert storage.get_note(WORKSPACE, note_a.id).content == "precious text"
    assert storage.get_note(WORKSPACE, note_b.id).content == ""
    assert coalescer.note_id == note_b.id


def test_switching_notes_logs_edits_that_still_cannot_be_saved(
    storage, timers, coalescer, monkeypatch, caplog
):
    note_a = storage.create_note(WORKSPACE, title="A")
    note_b = storage.create_note(WORKSPACE, title="B")
    coalescer.open(note_a)
    coalescer.edit("content", "precious text")
    _fail_once(storage, monkeypatch)
    timers.fire_all()

    coalescer.open(note_b)

    assert "dropped after a failed save" in caplog.text
    assert coalescer.note_id == note_b.id


def test_edit_during_save_keeps_status_pending(storage, timers, coalescer, monkeypatch):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)
    coalescer.edit("content", "v1")
    real_update = storage.update_note_fields

    def _update_while_typing(*args, **kwargs):  # noqa: ANN001
        coalescer.edit("content", "v2")
        return real_update(*args, **kwargs)

    monkeypatch.setattr(storage, "update_note_fields", _update_while_typing)
    timers.fire_all()

    assert storage.get_note(WORKSPACE, note.id).content == "v1"
    assert coalescer.status == "pending"
    assert coalescer.pending

    monkeypatch.undo()
    timers.fire_all()
    assert storage.get_note(WORKSPACE, note.id).content == "v2"
    assert coalescer.status == "saved"


def test_commit_for_deleted_note_reports_error(storage, timers, coalescer):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)
    coalescer.edit("content", "x")
    storage.delete_note(WORKSPACE, note.id)

    timers.fire_all()

    assert coalescer.status == "error"
    assert coalescer.last_error is not None


def test_edit_requires_open_note_and_editable_field(storage, coalescer):
    with pytest.raises(ValueError, match="No note is open"):
        coalescer.edit("content", "x")

    coalescer.open(storage.create_note(WORKSPACE))
    with pytest.raises(ValueError, match="summary"):
        coalescer.edit("summary", "x")


def test_flush_commits_immediately(storage, timers, coalescer):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)
    coalescer.edit("content", "now")

    assert coalescer.flush() is True
    assert storage.get_note(WORKSPACE, note.id).content == "now"
    assert not coalescer.pending
    assert timers.fire_all() == 0


def test_close_flushes_by_default(storage, timers, coalescer):
    note = storage.create_note(WORKSPACE)
    coalescer.open(note)
    coalescer.edit("content", "bye")

    coalescer.close()

    assert storage.get_note(WORKSPACE, note.id).content == "bye"
    assert coalescer.note_id is None
