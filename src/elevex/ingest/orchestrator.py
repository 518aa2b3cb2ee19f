"""Batch ingestion orchestrator.

Composes the ingestion primitives (duplicate detector, submitter, poller,
progress tracker, registrar) into one batch run that:

* Detects already-indexed files once, before anything is uploaded
* Processes the remaining files strictly one after another
* Contains every failure to the file it happened on
* Registers indexed files in the catalog without creating duplicates
* Refreshes the caller's view and evicts the progress list afterwards
* Stops starting new files on Ctrl+C (SIGINT/SIGTERM)
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from elevex.catalog import CatalogStore
from elevex.ingest.client import RagServerClient
from elevex.ingest.duplicates import DuplicateDetector
from elevex.ingest.poller import JobPoller, normalize_progress
from elevex.ingest.registrar import MetadataRegistrar
from elevex.ingest.schemas import BackendJobSnapshot, JobStatus
from elevex.ingest.session import BatchSession
from elevex.ingest.submitter import JobSubmitter
from elevex.ingest.tracker import ProgressTracker
from elevex.models import IngestConfig, Scope, SourceDocument, TaskStatus

logger = logging.getLogger(__name__)

# Backend stage -> task status shown to the operator.
_STAGE_STATUS: dict[str, TaskStatus] = {
    JobStatus.EXTRACTING.value: TaskStatus.PROCESSING,
    JobStatus.EMBEDDING.value: TaskStatus.PROCESSING,
    JobStatus.SAVING.value: TaskStatus.SAVING,
}

_STAGE_MESSAGES: dict[str, str] = {
    JobStatus.EXTRACTING.value: "Extracting text...",
    JobStatus.EMBEDDING.value: "Generating embeddings...",
    JobStatus.SAVING.value: "Saving vectors...",
}

MSG_SKIPPED = "Already indexed, skipped"
MSG_SERVER_SKIPPED = "Already indexed on server, skipped"
MSG_CANCELLED = "Cancelled before upload"


class IngestionOrchestrator:
    """Drives one batch of documents through upload, polling and registration.

    Usage::

        orchestrator = IngestionOrchestrator(client, catalog, config)
        session = await orchestrator.prepare_batch(documents, scope)
        summary = await orchestrator.run_batch(session, force_all=False)

    Args:
        client: RAG server client.
        catalog: Catalog store used for fallback duplicate detection and
            registration.
        config: Ingestion configuration.
        tracker: Progress tracker (one is created when omitted).
        on_batch_complete: Optional hook awaited after every batch, e.g. to
            refresh a catalog listing.
        sleep: Sleep function used between polls (injectable for tests).
    """

    def __init__(
        self,
        client: RagServerClient,
        catalog: CatalogStore,
        config: IngestConfig,
        tracker: ProgressTracker | None = None,
        on_batch_complete: Callable[[BatchSession], Awaitable[None]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        detector: DuplicateDetector | None = None,
        submitter: JobSubmitter | None = None,
        poller: JobPoller | None = None,
        registrar: MetadataRegistrar | None = None,
    ) -> None:
        self._config = config
        self.tracker = tracker or ProgressTracker(
            stall_threshold=config.stall_threshold_seconds
        )
        self._on_batch_complete = on_batch_complete
        self._detector = detector or DuplicateDetector(client, catalog)
        self._submitter = submitter or JobSubmitter(client)
        self._poller = poller or JobPoller(client, config, sleep=sleep)
        self._registrar = registrar or MetadataRegistrar(catalog)

        self._shutdown_event = asyncio.Event()
        self._stats = self._empty_stats()

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Stop starting new files; the file in flight runs to completion."""
        self._shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Register SIGINT/SIGTERM handlers for graceful shutdown.

        First signal sets the shutdown event (finish the current file).
        Second signal forces immediate exit.
        """
        self._signal_count = 0

        def _handler(signum: int, frame: Any) -> None:
            self._signal_count += 1
            if self._signal_count == 1:
                logger.warning("Graceful shutdown initiated, finishing current file...")
                self.request_shutdown()
            else:
                logger.warning("Forced shutdown. Exiting immediately.")
                raise SystemExit(1)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except (OSError, ValueError):
            # signal handlers can only be set in main thread
            logger.debug("Could not set signal handlers (not main thread)")

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    async def prepare_batch(
        self, documents: list[SourceDocument], scope: Scope
    ) -> BatchSession:
        """Build a session for *documents* and compute its duplicate set.

        Documents repeating an earlier file name are dropped so names stay
        unique within the batch.
        """
        unique: list[SourceDocument] = []
        seen: set[str] = set()
        for document in documents:
            if document.name in seen:
                logger.warning("Ignoring repeated file name in batch: %s", document.name)
                continue
            seen.add(document.name)
            unique.append(document)

        duplicates = await self._detector.detect([d.name for d in unique])
        session = BatchSession(scope=scope, documents=unique, duplicates=duplicates)
        logger.info(
            "Prepared batch %s: %d files, %d already indexed (%s)",
            session.batch_id,
            len(unique),
            len(duplicates),
            scope.label,
        )
        return session

    async def run_batch(
        self, session: BatchSession, force_all: bool = False
    ) -> dict[str, int]:
        """Process *session* sequentially and return a summary.

        Args:
            session: Batch from :meth:`prepare_batch`.
            force_all: Re-upload files even if they are known duplicates.

        Returns:
            Summary dict with total, succeeded, failed, skipped, cancelled.

        Raises:
            ValueError: If *session* has already been run.
        """
        if session.started_at is not None:
            raise ValueError(
                f"Batch {session.batch_id} has already been run; prepare a new batch"
            )

        self._stats = self._empty_stats()
        self._stats["total"] = len(session.documents)
        session.force_all = force_all

        to_process = session.pending_documents
        if not to_process:
            self._stats["skipped"] = len(session.documents)
            logger.warning("No files to process in batch %s (all already indexed)", session.batch_id)
            return self.summary

        self.tracker.begin(session)
        for document in session.documents:
            if session.is_skipped(document):
                self.tracker.add_task(
                    document.name, TaskStatus.DONE, MSG_SKIPPED, progress=100
                )
                self._stats["skipped"] += 1
            else:
                self.tracker.add_task(document.name)

        logger.info(
            "Starting batch %s: %d to upload, %d skipped, force=%s",
            session.batch_id,
            len(to_process),
            self._stats["skipped"],
            force_all,
        )

        for document in to_process:
            if self._shutdown_event.is_set():
                self.tracker.apply(document.name, TaskStatus.ERROR, MSG_CANCELLED)
                self._stats["cancelled"] += 1
                continue
            await self._process_document(session, document)

        session.finished_at = self.tracker.now()
        logger.info(
            "Batch %s complete: %d succeeded, %d failed, %d skipped, %d cancelled",
            session.batch_id,
            self._stats["succeeded"],
            self._stats["failed"],
            self._stats["skipped"],
            self._stats["cancelled"],
        )

        if self._on_batch_complete is not None:
            try:
                await self._on_batch_complete(session)
            except Exception as exc:
                logger.error("Post-batch refresh failed: %s", exc)

        self.tracker.schedule_eviction(self._config.display_window_seconds)
        return self.summary

    # ------------------------------------------------------------------
    # Single file pipeline
    # ------------------------------------------------------------------

    async def _process_document(
        self, session: BatchSession, document: SourceDocument
    ) -> None:
        """Submit, poll and register one document; never raises."""
        name = document.name
        try:
            self.tracker.apply(name, TaskStatus.UPLOADING, "Uploading file...", 5)

            try:
                outcome = await self._submitter.submit(document, session.scope)
            except Exception as exc:
                logger.error("Upload failed for %s: %s", name, exc)
                self._fail(name, str(exc))
                return

            if outcome.skipped:
                self.tracker.apply(name, TaskStatus.DONE, MSG_SERVER_SKIPPED, 100)
                self._stats["skipped"] += 1
                return

            self.tracker.apply(name, TaskStatus.PROCESSING, "Processing PDF...", 10)
            result = await self._poller.poll(
                outcome.job_id, lambda snapshot: self._on_snapshot(name, snapshot)
            )

            if result.status != JobStatus.DONE.value:
                message = result.message or "Processing failed on server"
                logger.error("Job %s for %s failed: %s", outcome.job_id, name, message)
                self._fail(name, message, normalize_progress(result))
                return

            self.tracker.apply(name, TaskStatus.SAVING, "Registering in catalog...", 98)
            await self._registrar.register_if_absent(
                session.scope,
                document.title,
                {"url": f"server/data/pdfs/{name}", "file_size": document.size},
            )

            self.tracker.apply(
                name,
                TaskStatus.DONE,
                f"{result.pages or '?'} pages -> {result.chunks or '?'} chunks indexed",
                100,
            )
            self._stats["succeeded"] += 1

        except Exception as exc:
            logger.exception("Unexpected error processing %s", name)
            self._fail(name, str(exc) or "Unknown error")

    def _on_snapshot(self, name: str, snapshot: BackendJobSnapshot) -> None:
        """Forward a non-terminal backend snapshot to the tracker."""
        status = _STAGE_STATUS.get(snapshot.status)
        if status is None:
            logger.debug("Ignoring unknown job stage %r for %s", snapshot.status, name)
            return

        # A late extracting/embedding report must not pull a task back out of saving.
        if status is TaskStatus.PROCESSING and self.tracker.get(name).status is TaskStatus.SAVING:
            status = TaskStatus.SAVING

        self.tracker.apply(
            name,
            status,
            snapshot.message or _STAGE_MESSAGES[snapshot.status],
            normalize_progress(snapshot),
        )

    def _fail(self, name: str, message: str, progress: int | None = None) -> None:
        if self.tracker.get(name).status.is_terminal:
            return
        self._stats["failed"] += 1
        self.tracker.apply(name, TaskStatus.ERROR, message, progress)

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {"total": 0, "succeeded": 0, "failed": 0, "skipped": 0, "cancelled": 0}

    @property
    def summary(self) -> dict[str, int]:
        """Return a copy of the current batch statistics."""
        return dict(self._stats)
