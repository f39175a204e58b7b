"""
Tests for ChangePropagationListener, ChangeFeed and the Debouncer it uses.
"""
from __future__ import annotations

from datetime import date

from notemind.services.change_feed import ChangeFeed
from notemind.services.models import ChangeEvent, EventCreate
from notemind.services.sync import ChangePropagationListener
from notemind.services.timers import Debouncer

from conftest import WORKSPACE


def _change(table: str, kind: str = "UPDATE") -> ChangeEvent:
    return ChangeEvent(table=table, kind=kind)


# ============================================================================
# ChangeFeed
# ============================================================================


def test_feed_delivers_only_to_matching_table():
    feed = ChangeFeed()
    notes, tasks = [], []
    feed.subscribe("notes", notes.append)
    feed.subscribe("tasks", tasks.append)

    feed.publish(_change("notes"))

    assert len(notes) == 1
    assert tasks == []


def test_feed_keeps_delivering_when_one_subscriber_fails():
    feed = ChangeFeed()
    seen = []

    def _broken(change):  # noqa: ANN001
        raise RuntimeError("subscriber bug")

    feed.subscribe("notes", _broken)
    feed.subscribe("notes", seen.append)
    feed.publish(_change("notes"))

    assert len(seen) == 1


def test_unsubscribe_is_idempotent():
    feed = ChangeFeed()
    sub = feed.subscribe("notes", lambda change: None)

    sub.unsubscribe()
    sub.unsubscribe()

    assert feed.subscriber_count("notes") == 0


# ============================================================================
# ChangePropagationListener
# ============================================================================


def test_one_refetch_per_change_on_any_watched_table():
    feed = ChangeFeed()
    refreshes = []
    listener = ChangePropagationListener(feed, lambda: refreshes.append(1))
    listener.start()

    feed.publish(_change("notes"))
    feed.publish(_change("tasks", "INSERT"))
    feed.publish(_change("events", "DELETE"))
    feed.publish(_change("note_images", "INSERT"))

    assert len(refreshes) == 3
    assert listener.refetch_count == 3


def test_start_twice_subscribes_once():
    feed = ChangeFeed()
    listener = ChangePropagationListener(feed, lambda: None)
    listener.start()
    listener.start()

    assert feed.subscriber_count("notes") == 1


def test_stop_releases_subscriptions_and_is_idempotent():
    feed = ChangeFeed()
    refreshes = []
    listener = ChangePropagationListener(feed, lambda: refreshes.append(1))
    listener.start()

    listener.stop()
    listener.stop()
    feed.publish(_change("notes"))

    assert refreshes == []
    assert not listener.active
    for table in ("notes", "tasks", "events"):
        assert feed.subscriber_count(table) == 0


def test_change_during_refetch_triggers_exactly_one_more():
    feed = ChangeFeed()
    calls = []

    def _refresh():
        calls.append(1)
        if len(calls) == 1:
            # Two changes land while the first refetch is still running.
            feed.publish(_change("tasks"))
            feed.publish(_change("events"))

    listener = ChangePropagationListener(feed, _refresh)
    listener.start()
    feed.publish(_change("notes"))

    assert len(calls) == 2


def test_debounced_burst_refetches_once(timers):
    feed = ChangeFeed()
    refreshes = []
    listener = ChangePropagationListener(
        feed, lambda: refreshes.append(1), debounce=0.2, timer_factory=timers
    )
    listener.start()

    feed.publish(_change("notes"))
    feed.publish(_change("tasks"))
    feed.publish(_change("events"))
    assert refreshes == []

    timers.fire_all()
    assert refreshes == [1]


def test_start_after_stop_does_not_resubscribe():
    feed = ChangeFeed()
    listener = ChangePropagationListener(feed, lambda: None)
    listener.start()
    listener.stop()

    listener.start()

    assert not listener.active
    for table in ("notes", "tasks", "events"):
        assert feed.subscriber_count(table) == 0


def test_start_after_stop_on_fresh_listener_subscribes_nothing():
    feed = ChangeFeed()
    listener = ChangePropagationListener(feed, lambda: None)
    listener.stop()

    listener.start()

    assert feed.subscriber_count("notes") == 0


def test_stop_cancels_pending_debounced_refetch(timers):
    feed = ChangeFeed()
    refreshes = []
    listener = ChangePropagationListener(
        feed, lambda: refreshes.append(1), debounce=0.2, timer_factory=timers
    )
    listener.start()
    feed.publish(_change("notes"))

    listener.stop()
    timers.fire_all()

    assert refreshes == []


def test_listener_reacts_to_storage_commits(storage):
    refreshes = []
    listener = ChangePropagationListener(storage.feed, lambda: refreshes.append(1))
    listener.start()

    note = storage.create_note(WORKSPACE)
    storage.create_event(WORKSPACE, EventCreate(title="e", event_date=date(2025, 1, 1)))
    storage.add_image(WORKSPACE, note.id, "https://img.example.com/a.png")

    assert len(refreshes) == 2


# ============================================================================
# Debouncer
# ============================================================================


def test_debouncer_runs_latest_callback_once(timers):
    debouncer = Debouncer(1.0, timers)
    ran = []

    debouncer.schedule(lambda: ran.append("first"))
    debouncer.schedule(lambda: ran.append("second"))

    assert timers.timers[0].cancelled
    timers.fire_all()
    assert ran == ["second"]
    assert not debouncer.pending


def test_debouncer_cancelled_timer_firing_late_is_ignored(timers):
    debouncer = Debouncer(1.0, timers)
    ran = []

    debouncer.schedule(lambda: ran.append(1))
    assert debouncer.cancel() is True
    timers.timers[0].fire()

    assert ran == []
    assert debouncer.cancel() is False
