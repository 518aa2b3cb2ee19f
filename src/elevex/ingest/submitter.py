"""Job submitter: uploads one document and returns a job handle."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from elevex.ingest.client import RagServerClient
from elevex.ingest.exceptions import ServerRejectedError
from elevex.models import Scope, SourceDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitOutcome:
    """Result of a submission: a job to poll, or a server-side skip."""

    job_id: str | None = None
    skipped: bool = False
    message: str | None = None


class JobSubmitter:
    """Sends a document to ``POST /upload`` tagged with its scope's brand name.

    Errors from the client (:class:`UploadTimeoutError`,
    :class:`ServerUnavailableError`, :class:`ServerRejectedError`) propagate
    to the orchestrator, which marks only this file as failed.
    """

    def __init__(self, client: RagServerClient) -> None:
        self._client = client

    async def submit(self, document: SourceDocument, scope: Scope) -> SubmitOutcome:
        result = await self._client.upload(document, brand_name=scope.brand_name)

        if result.skipped:
            logger.info("Server reports %s already indexed, skipping", document.name)
            return SubmitOutcome(skipped=True, message=result.message)

        if not result.task_id:
            raise ServerRejectedError("Server did not return a taskId")

        logger.info("Submitted %s as job %s", document.name, result.task_id)
        return SubmitOutcome(job_id=result.task_id, message=result.message)
