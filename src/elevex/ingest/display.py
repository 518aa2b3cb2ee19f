"""Rich live display of the active batch.

Renders the tracker's read model as a table. The table redraws on every
tracker change and also refreshes on its own, so stall counters keep
ticking between backend updates:

* **Status** -- coloured by stage (blue in progress, green done, red error)
* **Progress** -- percentage bar for active and finished files
* **Message** -- current activity, plus the stall advisory when relevant
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from elevex.ingest.tracker import ProgressTracker, TaskRow
from elevex.models import TaskStatus

STATUS_STYLES: dict[TaskStatus, str] = {
    TaskStatus.WAITING: "dim",
    TaskStatus.UPLOADING: "blue",
    TaskStatus.PROCESSING: "blue",
    TaskStatus.SAVING: "blue",
    TaskStatus.DONE: "green",
    TaskStatus.ERROR: "red",
}

_DEFAULT_MESSAGES: dict[TaskStatus, str] = {
    TaskStatus.WAITING: "Waiting...",
}


class BatchProgressDisplay:
    """Live table bound to a :class:`ProgressTracker`.

    Usage::

        display = BatchProgressDisplay(orchestrator.tracker, title="Schindler")
        with display:
            await orchestrator.run_batch(session)
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        console: Console | None = None,
        title: str = "Upload",
    ) -> None:
        self._tracker = tracker
        self._title = title
        self._running = False
        self._live = Live(
            console=console,
            get_renderable=self.render,
            refresh_per_second=4,
            transient=False,
        )
        tracker.add_listener(self._on_change)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._live.start()
        self._running = True

    def stop(self) -> None:
        self._running = False
        self._live.stop()

    def _on_change(self) -> None:
        if self._running:
            self._live.refresh()

    def __enter__(self) -> BatchProgressDisplay:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self) -> Table:
        counts = self._tracker.counts()
        table = Table(
            title=self._title,
            caption=(
                f"{counts['done']} done, {counts['error']} failed, "
                f"{counts['waiting']} waiting"
            ),
            expand=True,
        )
        table.add_column("File", style="cyan", no_wrap=True, ratio=3)
        table.add_column("Status", width=11)
        table.add_column("Progress", ratio=2)
        table.add_column("Message", ratio=4)

        for row in self._tracker.rows():
            table.add_row(*render_row(row))
        return table


def render_row(row: TaskRow) -> tuple:
    """Cells for one row: file, status, progress, message."""
    style = STATUS_STYLES[row.status]
    status = Text(row.status.value, style=style)

    if row.progress is not None and row.status is not TaskStatus.WAITING:
        pct = max(0, min(100, row.progress))
        progress = Group(
            ProgressBar(total=100, completed=pct, complete_style=style, finished_style=style),
            Text(f"{pct}%", style="dim"),
        )
    else:
        progress = Text("")

    message = Text(row.message or _DEFAULT_MESSAGES.get(row.status, "Processing..."), style=style)
    if row.detail:
        message.append(f"\n{row.detail}", style="dim")

    return (row.file_name, status, progress, message)
