"""Tests for ProgressTracker mutation rules, read model and eviction."""

from __future__ import annotations

import asyncio

import pytest

from elevex.ingest.exceptions import InvalidTransitionError
from elevex.ingest.session import BatchSession
from elevex.ingest.tracker import ProgressTracker
from elevex.models import Scope, SourceDocument, TaskStatus


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _session(*names: str) -> BatchSession:
    return BatchSession(
        scope=Scope(brand_id="b1", brand_name="Otis"),
        documents=[SourceDocument.from_bytes(n, b"data") for n in names],
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> ProgressTracker:
    t = ProgressTracker(stall_threshold=25.0, clock=clock)
    t.begin(_session("a.pdf", "b.pdf"))
    t.add_task("a.pdf")
    t.add_task("b.pdf")
    return t


class TestApply:
    def test_progress_never_decreases(self, tracker):
        tracker.apply("a.pdf", TaskStatus.UPLOADING, "Uploading file...", 5)
        tracker.apply("a.pdf", TaskStatus.PROCESSING, "Processing PDF...", 47)
        tracker.apply("a.pdf", TaskStatus.PROCESSING, "Extracting text...", 10)
        assert tracker.get("a.pdf").progress == 47
        assert tracker.get("a.pdf").message == "Extracting text..."

    def test_done_pins_progress_to_100(self, tracker):
        tracker.apply("a.pdf", TaskStatus.UPLOADING, progress=5)
        tracker.apply("a.pdf", TaskStatus.DONE, "finished", 40)
        assert tracker.get("a.pdf").progress == 100

    def test_error_keeps_last_progress_when_none_given(self, tracker):
        tracker.apply("a.pdf", TaskStatus.UPLOADING, progress=5)
        tracker.apply("a.pdf", TaskStatus.PROCESSING, progress=30)
        tracker.apply("a.pdf", TaskStatus.ERROR, "boom")
        task = tracker.get("a.pdf")
        assert task.status is TaskStatus.ERROR
        assert task.progress == 30
        assert task.message == "boom"

    def test_terminal_task_rejects_patches(self, tracker):
        tracker.apply("a.pdf", TaskStatus.ERROR, "failed")
        with pytest.raises(InvalidTransitionError):
            tracker.apply("a.pdf", TaskStatus.UPLOADING)
        with pytest.raises(InvalidTransitionError):
            tracker.apply("a.pdf", message="late update")

    def test_apply_stamps_clock(self, tracker, clock):
        clock.now += 7
        tracker.apply("a.pdf", TaskStatus.UPLOADING, progress=5)
        assert tracker.get("a.pdf").last_updated_at == clock.now

    def test_unknown_file_raises(self, tracker):
        with pytest.raises(KeyError):
            tracker.apply("missing.pdf", TaskStatus.UPLOADING)

    def test_duplicate_task_name_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.add_task("a.pdf")

    def test_listener_notified(self, tracker):
        calls = []
        tracker.add_listener(lambda: calls.append(1))
        tracker.apply("a.pdf", TaskStatus.UPLOADING)
        assert calls == [1]


class TestRows:
    def test_display_order(self, clock):
        t = ProgressTracker(clock=clock)
        t.begin(_session())
        t.add_task("done.pdf", TaskStatus.DONE, progress=100)
        t.add_task("err.pdf", TaskStatus.ERROR)
        t.add_task("wait.pdf")
        t.add_task("up.pdf", TaskStatus.UPLOADING)
        t.add_task("save.pdf", TaskStatus.SAVING)
        t.add_task("proc.pdf", TaskStatus.PROCESSING)

        names = [row.file_name for row in t.rows()]
        assert names == ["save.pdf", "proc.pdf", "up.pdf", "wait.pdf", "err.pdf", "done.pdf"]

    def test_stall_flag_after_threshold(self, tracker, clock):
        tracker.apply("a.pdf", TaskStatus.UPLOADING, progress=5)
        clock.now += 20
        row = tracker.rows()[0]
        assert not row.is_stalled
        assert row.detail == "Updating in real time..."

        clock.now += 10
        row = tracker.rows()[0]
        assert row.stalled_for == 30
        assert row.detail == "No update received for 30s"

    def test_stall_is_advisory_only(self, tracker, clock):
        tracker.apply("a.pdf", TaskStatus.UPLOADING, progress=5)
        clock.now += 100
        tracker.rows()
        assert tracker.get("a.pdf").status is TaskStatus.UPLOADING

    def test_waiting_tasks_never_stall(self, tracker, clock):
        clock.now += 100
        assert all(not row.is_stalled for row in tracker.rows())

    def test_counts(self, tracker):
        tracker.apply("a.pdf", TaskStatus.DONE)
        counts = tracker.counts()
        assert counts["done"] == 1
        assert counts["waiting"] == 1


class TestEviction:
    def test_begin_evicts_previous_batch(self, tracker):
        old = tracker.session
        new = _session("c.pdf")
        tracker.begin(new)
        assert old.evicted
        assert old.tasks == []
        assert tracker.session is new

    def test_require_session(self):
        with pytest.raises(RuntimeError):
            ProgressTracker().add_task("a.pdf")

    async def test_scheduled_eviction_clears_tasks(self, tracker):
        task = tracker.schedule_eviction(0)
        await task
        assert tracker.tasks == []
        assert tracker.session.evicted

    async def test_new_batch_cancels_pending_eviction(self, tracker):
        old = tracker.session
        pending = tracker.schedule_eviction(60)
        tracker.begin(_session("c.pdf"))
        tracker.add_task("c.pdf")
        await asyncio.sleep(0)
        assert pending.cancelled()
        assert [t.file_name for t in tracker.tasks] == ["c.pdf"]
        assert old.evicted
