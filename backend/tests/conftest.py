"""
Shared fixtures and test fakes.

Timers never fire on their own here: FakeTimerFactory records every timer
and the test fires them explicitly.
"""
from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Callable, List

import pytest

from notemind.services.analyzer import AnalysisResult, SuggestedEvent
from notemind.services.storage import WorkspaceStorage


WORKSPACE = "guest_testworkspace1"


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.fired = True
        self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self) -> int:
        """Fire every timer that is still live. Returns how many fired."""
        live = self.live
        for timer in live:
            timer.fire()
        return len(live)


class FakeEmbeddings:
    model = "test-embedding-model"

    def __init__(self, vector=None, error: Exception | None = None):
        self.vector = [0.1, 0.2, 0.3] if vector is None else vector
        self.error = error
        self.calls: List[str] = []

    def embed_text(self, text: str):  # noqa: ANN201 - test fake
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if not text.strip():
            return []
        return list(self.vector)


class FakeAnalyzer:
    def __init__(self, result: AnalysisResult | None = None, error: Exception | None = None):
        self.result = result or make_result()
        self.error = error
        self.calls: List[str] = []
        self.on_call: Callable[[], None] | None = None

    def analyze(self, text, reference_date=None):  # noqa: ANN001 - test fake
        self.calls.append(text)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return self.result


def make_result(**overrides) -> AnalysisResult:
    fields = dict(
        improved_title="Meeting Prep",
        summary="Prepare for Alice.",
        category="Work",
        note_type="Meeting",
        tags=["work"],
        key_points=["meet alice"],
        action_items=["Book room", "Send agenda"],
        common_topics=["planning"],
        suggested_links=[],
        suggested_events=[
            SuggestedEvent(title="Alice meeting", date=date(2025, 3, 12).isoformat())
        ],
    )
    fields.update(overrides)
    return AnalysisResult(**fields)


@pytest.fixture()
def storage(tmp_path: Path) -> WorkspaceStorage:
    return WorkspaceStorage(db_path=tmp_path / "notemind_test.db")


@pytest.fixture()
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()
