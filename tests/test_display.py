"""Tests for the rich batch progress table."""

from __future__ import annotations

from unittest.mock import MagicMock

from rich.console import Console

from elevex.ingest.display import BatchProgressDisplay, render_row
from elevex.ingest.session import BatchSession
from elevex.ingest.tracker import ProgressTracker, TaskRow
from elevex.models import Scope, TaskStatus


def _render(display: BatchProgressDisplay) -> str:
    console = Console(record=True, width=160)
    console.print(display.render())
    return console.export_text()


def test_render_lists_tasks_with_counts():
    clock = lambda: 1000.0  # noqa: E731
    tracker = ProgressTracker(clock=clock)
    tracker.begin(BatchSession(scope=Scope(brand_id="b1"), documents=[]))
    tracker.add_task("A.pdf", TaskStatus.PROCESSING, "Generating embeddings...", 47)
    tracker.add_task("B.pdf", TaskStatus.DONE, "Already indexed, skipped", 100)
    tracker.add_task("C.pdf")

    text = _render(BatchProgressDisplay(tracker, title="Schindler"))

    assert "Schindler" in text
    assert "Generating embeddings..." in text
    assert "47%" in text
    assert "Updating in real time..." in text
    assert "1 done, 0 failed, 1 waiting" in text
    assert text.index("A.pdf") < text.index("C.pdf") < text.index("B.pdf")


def test_stalled_row_detail():
    row = TaskRow(
        file_name="A.pdf",
        status=TaskStatus.UPLOADING,
        message="Uploading file...",
        progress=5,
        stalled_for=31,
        detail="No update received for 31s",
    )
    file_cell, status, _, message = render_row(row)
    assert file_cell == "A.pdf"
    assert status.plain == "uploading"
    assert message.plain == "Uploading file...\nNo update received for 31s"


def test_waiting_row_has_default_message():
    row = TaskRow(file_name="C.pdf", status=TaskStatus.WAITING, message="", progress=0)
    _, _, progress, message = render_row(row)
    assert message.plain == "Waiting..."
    assert progress.plain == ""


def test_tracker_changes_redraw_while_running():
    tracker = ProgressTracker(clock=lambda: 1000.0)
    tracker.begin(BatchSession(scope=Scope(brand_id="b1"), documents=[]))
    tracker.add_task("A.pdf")
    display = BatchProgressDisplay(tracker)
    display._live = MagicMock()

    tracker.apply("A.pdf", TaskStatus.UPLOADING, "Uploading file...", 5)
    display._live.refresh.assert_not_called()

    with display:
        tracker.apply("A.pdf", TaskStatus.PROCESSING, "Processing PDF...", 10)
        assert display._live.refresh.call_count == 1

    tracker.apply("A.pdf", TaskStatus.DONE, "done", 100)
    assert display._live.refresh.call_count == 1
