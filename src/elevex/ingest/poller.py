"""Job poller: drives :func:`poll_until` against the upload status endpoint."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable

from elevex.ingest.client import RagServerClient
from elevex.ingest.polling import poll_until
from elevex.ingest.schemas import BackendJobSnapshot, JobStatus
from elevex.models import IngestConfig

logger = logging.getLogger(__name__)

# Representative percentage for coarse backend stages without explicit progress.
STAGE_PROGRESS: dict[str, int] = {
    JobStatus.EXTRACTING.value: 10,
    JobStatus.EMBEDDING.value: 30,
    JobStatus.SAVING.value: 95,
    JobStatus.DONE.value: 100,
}


def normalize_progress(snapshot: BackendJobSnapshot) -> int | None:
    """Map a snapshot to a 0-100 percentage, or ``None`` if unknown."""
    progress = snapshot.progress
    if progress is not None and math.isfinite(progress):
        return max(0, min(100, round(progress)))
    return STAGE_PROGRESS.get(snapshot.status)


class JobPoller:
    """Polls one backend job until it reaches a terminal snapshot.

    A handle the backend no longer recognizes (``not_found``) is terminal
    and reported as an error snapshot. Exceeding the attempt ceiling yields
    a synthetic ``error`` snapshot with a timeout message.
    """

    def __init__(
        self,
        client: RagServerClient,
        config: IngestConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._interval = config.poll_interval_seconds
        self._max_attempts = config.poll_max_attempts
        self._sleep = sleep

    def _timeout_snapshot(self, attempts: int) -> BackendJobSnapshot:
        ceiling = self._interval * attempts
        if ceiling >= 60:
            limit = f"{ceiling / 60:g} minutes"
        else:
            limit = f"{ceiling:g} seconds"
        return BackendJobSnapshot(
            status=JobStatus.ERROR.value,
            message=f"Timeout: processing took longer than {limit}",
        )

    async def poll(
        self,
        job_id: str,
        on_progress: Callable[[BackendJobSnapshot], None],
    ) -> BackendJobSnapshot:
        """Poll *job_id* and return its terminal snapshot."""
        logger.debug("Polling job %s (every %gs, max %d)", job_id, self._interval, self._max_attempts)

        snapshot = await poll_until(
            lambda: self._client.get_job_status(job_id),
            lambda s: s.is_terminal,
            interval=self._interval,
            max_attempts=self._max_attempts,
            on_progress=on_progress,
            on_timeout=self._timeout_snapshot,
            sleep=self._sleep,
        )

        if snapshot.status == JobStatus.NOT_FOUND.value:
            logger.warning("Job %s not found on server", job_id)
            return BackendJobSnapshot(
                status=JobStatus.ERROR.value,
                message=snapshot.message or f"Job {job_id} not found (it may have expired)",
                progress=snapshot.progress,
            )
        logger.debug("Job %s finished with status %s", job_id, snapshot.status)
        return snapshot
