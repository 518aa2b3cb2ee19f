"""Batch ingestion pipeline for the RAG server.

Public API
----------
.. autoclass:: RagServerClient
.. autoclass:: DuplicateDetector
.. autoclass:: JobSubmitter
.. autoclass:: JobPoller
.. autoclass:: ProgressTracker
.. autoclass:: IngestionOrchestrator
.. autoclass:: MetadataRegistrar
.. autoclass:: BatchSession
.. autofunction:: poll_until
"""

from elevex.ingest.client import RagServerClient
from elevex.ingest.duplicates import DuplicateDetector
from elevex.ingest.exceptions import (
    IngestError,
    InvalidTransitionError,
    ServerRejectedError,
    ServerUnavailableError,
    UploadTimeoutError,
)
from elevex.ingest.orchestrator import IngestionOrchestrator
from elevex.ingest.poller import JobPoller, normalize_progress
from elevex.ingest.polling import poll_until
from elevex.ingest.reconcile import ReconcileResult, reconcile_catalog
from elevex.ingest.registrar import MetadataRegistrar
from elevex.ingest.schemas import BackendJobSnapshot, JobStatus
from elevex.ingest.session import BatchSession
from elevex.ingest.submitter import JobSubmitter, SubmitOutcome
from elevex.ingest.tracker import ProgressTracker, TaskRow

__all__ = [
    "BackendJobSnapshot",
    "BatchSession",
    "DuplicateDetector",
    "IngestError",
    "IngestionOrchestrator",
    "InvalidTransitionError",
    "JobPoller",
    "JobStatus",
    "JobSubmitter",
    "MetadataRegistrar",
    "ProgressTracker",
    "RagServerClient",
    "ReconcileResult",
    "ServerRejectedError",
    "ServerUnavailableError",
    "SubmitOutcome",
    "TaskRow",
    "UploadTimeoutError",
    "normalize_progress",
    "poll_until",
    "reconcile_catalog",
]
