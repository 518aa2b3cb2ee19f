"""Catalog reconciliation against the RAG server's vector store.

When the server reports an empty vector store (e.g. after an index reset),
every ``indexed`` catalog record is stale: it would make the duplicate
fallback and the operator's file list claim documents that are no longer
searchable. Reconciliation purges those records so the PDFs can be
uploaded again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from elevex.catalog import CatalogStore
from elevex.ingest.client import RagServerClient
from elevex.models import RecordStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    server_documents: int
    purged_records: int = 0

    @property
    def in_sync(self) -> bool:
        return self.purged_records == 0


async def reconcile_catalog(
    client: RagServerClient, catalog: CatalogStore
) -> ReconcileResult:
    """Purge stale ``indexed`` records when the server index is empty."""
    stats = await client.stats()
    if stats.total_documents > 0:
        logger.info("Vector store holds %d documents; catalog kept", stats.total_documents)
        return ReconcileResult(server_documents=stats.total_documents)

    purged = await catalog.delete_records_by_status(RecordStatus.INDEXED)
    if purged:
        logger.warning("Vector store is empty; purged %d stale catalog records", purged)
    return ReconcileResult(server_documents=0, purged_records=purged)
