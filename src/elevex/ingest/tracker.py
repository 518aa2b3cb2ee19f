"""Per-file progress state for the active ingestion batch.

The tracker owns nothing but the mutation rules: the orchestrator hands it
a :class:`BatchSession` and then drives every status change through
:meth:`ProgressTracker.apply`. Each patch is validated by the
:mod:`elevex.ingest.fsm` state machine, applied in one step, and stamped
with the tracker's clock.

The read model (:meth:`ProgressTracker.rows`) surfaces the busiest files
first and flags entries that have not been updated for a while.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from elevex.ingest.fsm import validate_transition
from elevex.ingest.session import BatchSession
from elevex.models import FileTask, TaskStatus

logger = logging.getLogger(__name__)

# Lower rank is displayed first.
DISPLAY_RANK: dict[TaskStatus, int] = {
    TaskStatus.PROCESSING: 0,
    TaskStatus.SAVING: 0,
    TaskStatus.UPLOADING: 1,
    TaskStatus.WAITING: 2,
    TaskStatus.ERROR: 3,
    TaskStatus.DONE: 4,
}

ACTIVE_STATUSES = frozenset(
    {TaskStatus.UPLOADING, TaskStatus.PROCESSING, TaskStatus.SAVING}
)


@dataclass(frozen=True)
class TaskRow:
    """Display snapshot of one :class:`FileTask`."""

    file_name: str
    status: TaskStatus
    message: str
    progress: int | None
    stalled_for: int | None = None
    detail: str | None = None

    @property
    def is_stalled(self) -> bool:
        return self.stalled_for is not None


class ProgressTracker:
    """Applies status patches to the tasks of the current batch.

    Args:
        stall_threshold: Seconds without an update after which an active
            task is flagged as stalled (advisory only).
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        stall_threshold: float = 25.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._stall_threshold = stall_threshold
        self._clock = clock
        self._session: BatchSession | None = None
        self._listeners: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    @property
    def session(self) -> BatchSession | None:
        return self._session

    def now(self) -> float:
        return self._clock()

    @property
    def tasks(self) -> list[FileTask]:
        if self._session is None:
            return []
        return self._session.tasks

    def begin(self, session: BatchSession) -> None:
        """Attach *session*, evicting whatever batch was visible before."""
        if self._session is not None and self._session is not session:
            self.evict()
        self._session = session
        session.evicted = False
        session.started_at = self._clock()
        self._notify()

    def add_task(
        self,
        file_name: str,
        status: TaskStatus = TaskStatus.WAITING,
        message: str = "",
        progress: int | None = 0,
    ) -> FileTask:
        session = self._require_session()
        if any(t.file_name == file_name for t in session.tasks):
            raise ValueError(f"Duplicate file name in batch: {file_name}")
        task = FileTask(
            file_name=file_name,
            status=status,
            message=message,
            progress=progress,
            last_updated_at=self._clock(),
        )
        session.tasks.append(task)
        self._notify()
        return task

    def get(self, file_name: str) -> FileTask:
        return self._require_session().task_for(file_name)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply(
        self,
        file_name: str,
        status: TaskStatus | None = None,
        message: str | None = None,
        progress: int | None = None,
    ) -> FileTask:
        """Apply a ``{status, message, progress}`` patch to one task.

        Raises:
            InvalidTransitionError: If the status change is not allowed.
            KeyError: If no task with *file_name* is in the batch.
        """
        task = self.get(file_name)
        target = status if status is not None else task.status
        validate_transition(task.status, target)

        if target is TaskStatus.DONE:
            new_progress: int | None = 100
        elif target is TaskStatus.ERROR:
            new_progress = progress if progress is not None else task.progress
        elif progress is None:
            new_progress = task.progress
        elif task.progress is not None and progress < task.progress:
            logger.debug(
                "Ignoring progress regression for %s: %s -> %s",
                file_name, task.progress, progress,
            )
            new_progress = task.progress
        else:
            new_progress = progress

        task.status = target
        if message is not None:
            task.message = message
        task.progress = new_progress
        task.last_updated_at = self._clock()

        logger.debug(
            "%s: %s %s%% %s", file_name, target.value, new_progress, task.message
        )
        self._notify()
        return task

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def rows(self, now: float | None = None) -> list[TaskRow]:
        """Tasks ordered for display, with stall flags computed at *now*."""
        if now is None:
            now = self._clock()

        ordered = sorted(self.tasks, key=lambda t: DISPLAY_RANK[t.status])
        rows: list[TaskRow] = []
        for task in ordered:
            stalled_for = None
            detail = None
            if task.status in ACTIVE_STATUSES:
                age = now - task.last_updated_at
                if age > self._stall_threshold:
                    stalled_for = int(age)
                    detail = f"No update received for {stalled_for}s"
                else:
                    detail = "Updating in real time..."
            rows.append(
                TaskRow(
                    file_name=task.file_name,
                    status=task.status,
                    message=task.message,
                    progress=task.progress,
                    stalled_for=stalled_for,
                    detail=detail,
                )
            )
        return rows

    def counts(self) -> dict[str, int]:
        result = {status.value: 0 for status in TaskStatus}
        for task in self.tasks:
            result[task.status.value] += 1
        return result

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def evict(self) -> None:
        """Drop the visible batch immediately."""
        session = self._session
        if session is None:
            return
        if session.eviction is not None and not session.eviction.done():
            if session.eviction is not asyncio.current_task():
                session.eviction.cancel()
        session.tasks.clear()
        session.evicted = True
        logger.debug("Evicted batch %s", session.batch_id)
        self._notify()

    def schedule_eviction(self, delay: float) -> asyncio.Task:
        """Evict the current batch after *delay* seconds."""
        session = self._require_session()

        async def _evict_later() -> None:
            await asyncio.sleep(delay)
            if self._session is session:
                self.evict()

        session.eviction = asyncio.create_task(_evict_later())
        return session.eviction

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback()

    def _require_session(self) -> BatchSession:
        if self._session is None:
            raise RuntimeError("No active batch -- call begin() first")
        return self._session
