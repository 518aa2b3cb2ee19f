"""File task finite state machine for the ingestion console.

Each progress patch is validated against a ``FileTaskSM`` positioned at
the task's current status before the tracker applies it. The FSM is
purely a validation tool -- it holds no task data and has no callbacks.
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from elevex.ingest.exceptions import InvalidTransitionError
from elevex.models import TaskStatus


class FileTaskSM(StateMachine):
    """Six-state lifecycle of one file within a batch.

    States:
        waiting    -- Queued in the batch, nothing sent yet.
        uploading  -- Multipart upload in flight.
        processing -- Server is extracting text / generating embeddings.
        saving     -- Vectors or catalog record being persisted.
        done       -- Indexed (or skipped as already indexed).
        error      -- Failed; retried only through a new batch.

    ``done`` and ``error`` are final: no event leaves them.
    """

    waiting = State("waiting", initial=True, value="waiting")
    uploading = State("uploading", value="uploading")
    processing = State("processing", value="processing")
    saving = State("saving", value="saving")
    done = State("done", final=True, value="done")
    error = State("error", final=True, value="error")

    start_upload = waiting.to(uploading)
    begin_processing = uploading.to(processing)
    begin_saving = processing.to(saving)
    complete = (
        waiting.to(done)
        | uploading.to(done)
        | processing.to(done)
        | saving.to(done)
    )
    fail = (
        waiting.to(error)
        | uploading.to(error)
        | processing.to(error)
        | saving.to(error)
    )


# Event that moves a task INTO each status.
_EVENT_FOR_TARGET: dict[TaskStatus, str] = {
    TaskStatus.UPLOADING: "start_upload",
    TaskStatus.PROCESSING: "begin_processing",
    TaskStatus.SAVING: "begin_saving",
    TaskStatus.DONE: "complete",
    TaskStatus.ERROR: "fail",
}


def create_fsm(current_state: str) -> FileTaskSM:
    """Create an FSM instance at *current_state* (a :class:`TaskStatus` value)."""
    return FileTaskSM(start_value=current_state)


def validate_transition(current: TaskStatus, target: TaskStatus) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> target`` is legal.

    Staying in the same status is always legal (a plain message/progress
    update), except for terminal statuses which accept no patches at all.
    """
    if current == target and not current.is_terminal:
        return

    event = _EVENT_FOR_TARGET.get(target)
    if event is None:
        raise InvalidTransitionError(f"Cannot transition {current.value} -> {target.value}")

    fsm = create_fsm(current.value)
    try:
        fsm.send(event)
    except TransitionNotAllowed as exc:
        raise InvalidTransitionError(
            f"Cannot transition {current.value} -> {target.value}"
        ) from exc
