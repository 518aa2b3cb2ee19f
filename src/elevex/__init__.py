"""Elevex document ingestion console."""

__version__ = "0.1.0"

from elevex.models import (
    FileTask,
    IngestConfig,
    MetadataRecord,
    RecordStatus,
    Scope,
    SourceDocument,
    TaskStatus,
)

__all__ = [
    "FileTask",
    "IngestConfig",
    "MetadataRecord",
    "RecordStatus",
    "Scope",
    "SourceDocument",
    "TaskStatus",
    "__version__",
]
