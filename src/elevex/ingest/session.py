"""Batch session value owned by the ingestion orchestrator."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field

from elevex.models import FileTask, Scope, SourceDocument


@dataclass
class BatchSession:
    """One ingestion run: the selected documents, their duplicate set and tasks.

    Created by :meth:`IngestionOrchestrator.prepare_batch`; tasks are filled
    in by the tracker when the batch starts and cleared on eviction.
    """

    scope: Scope
    documents: list[SourceDocument]
    duplicates: set[str] = field(default_factory=set)
    force_all: bool = False
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    tasks: list[FileTask] = field(default_factory=list)
    started_at: float | None = None
    finished_at: float | None = None
    evicted: bool = False
    eviction: asyncio.Task | None = field(default=None, repr=False)

    def is_skipped(self, document: SourceDocument) -> bool:
        """True when *document* is a known duplicate and the batch is not forced."""
        return not self.force_all and document.name in self.duplicates

    @property
    def pending_documents(self) -> list[SourceDocument]:
        """Documents that will go through submit and poll, in input order."""
        return [d for d in self.documents if not self.is_skipped(d)]

    def task_for(self, file_name: str) -> FileTask:
        for task in self.tasks:
            if task.file_name == file_name:
                return task
        raise KeyError(file_name)
