"""Generic poll-until-terminal primitive.

A cooperative retry loop built on tenacity: fetch a snapshot on a fixed
interval until a predicate says it is terminal or the attempt ceiling is
reached. Exceptions raised by a fetch count as transient and consume one
attempt. Exceptions raised by ``on_progress`` are not retried: they
propagate to the caller, as does ``asyncio.CancelledError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    on_timeout: Callable[[int], T],
    on_progress: Callable[[T], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call *fetch* until *is_terminal* accepts its result.

    Args:
        fetch: Coroutine function returning a fresh snapshot.
        is_terminal: Predicate deciding whether a snapshot ends the loop.
        interval: Seconds to wait between attempts.
        max_attempts: Total number of fetches before giving up.
        on_timeout: Called with the attempt count once the ceiling is hit;
            its return value is returned instead of raising.
        on_progress: Called with every non-terminal snapshot.
        sleep: Awaitable sleep function (injectable for tests).

    Returns:
        The first terminal snapshot, or ``on_timeout(max_attempts)``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def _report_progress(retry_state: RetryCallState) -> None:
        # Runs outside the attempt, only for outcomes that will be retried.
        outcome = retry_state.outcome
        if on_progress is not None and outcome is not None and not outcome.failed:
            on_progress(outcome.result())

    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            logger.warning(
                "Transient polling error (attempt %d/%d): %s",
                retry_state.attempt_number,
                max_attempts,
                outcome.exception(),
            )

    def _give_up(retry_state: RetryCallState) -> T:
        logger.warning(
            "Polling gave up after %d attempts without a terminal snapshot",
            retry_state.attempt_number,
        )
        return on_timeout(retry_state.attempt_number)

    retrying = AsyncRetrying(
        wait=wait_fixed(interval),
        stop=stop_after_attempt(max_attempts),
        retry=(
            retry_if_exception_type(Exception)
            | retry_if_result(lambda snapshot: not is_terminal(snapshot))
        ),
        after=_report_progress,
        before_sleep=_log_retry,
        retry_error_callback=_give_up,
        sleep=sleep,
    )
    return await retrying(fetch)
