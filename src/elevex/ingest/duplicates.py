"""Duplicate detection ahead of a batch upload.

The RAG server's ``/check-duplicates`` endpoint is authoritative. When it
cannot be used, the local catalog is consulted instead: a candidate whose
derived title already has a record (under any scope) counts as a
duplicate. That fallback is best-effort and can disagree with the real
index. Detection never fails a batch -- the worst case is an empty set.
"""

from __future__ import annotations

import logging

from elevex.catalog import CatalogStore
from elevex.ingest.client import RagServerClient
from elevex.models import derive_title

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """Determines which candidate file names are already indexed."""

    def __init__(self, client: RagServerClient, catalog: CatalogStore) -> None:
        self._client = client
        self._catalog = catalog

    async def detect(self, candidate_names: list[str]) -> set[str]:
        if not candidate_names:
            return set()

        try:
            reported = await self._client.check_duplicates(candidate_names)
        except Exception as exc:
            logger.warning(
                "Server duplicate check failed (%s), falling back to catalog", exc
            )
        else:
            duplicates = set(reported) & set(candidate_names)
            logger.info(
                "Server duplicate check: %d of %d already indexed",
                len(duplicates),
                len(candidate_names),
            )
            return duplicates

        try:
            return await self._detect_from_catalog(candidate_names)
        except Exception as exc:
            logger.warning("Catalog duplicate check failed: %s", exc)
            return set()

    async def _detect_from_catalog(self, candidate_names: list[str]) -> set[str]:
        by_title: dict[str, list[str]] = {}
        for name in candidate_names:
            by_title.setdefault(derive_title(name), []).append(name)

        existing = await self._catalog.find_titles(list(by_title))
        duplicates = {name for title in existing for name in by_title.get(title, [])}
        logger.info(
            "Catalog duplicate check: %d of %d already registered",
            len(duplicates),
            len(candidate_names),
        )
        return duplicates
