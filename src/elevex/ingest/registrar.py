"""Registers successfully indexed files in the catalog.

``register_if_absent`` is a read-then-write: two concurrent callers could
both see no record and both insert. The orchestrator registers each file
at most once per run, so the window is accepted rather than closed with
a transaction or a unique index.
"""

from __future__ import annotations

import logging

from elevex.catalog import CatalogStore
from elevex.models import RecordStatus, Scope

logger = logging.getLogger(__name__)


class MetadataRegistrar:
    def __init__(self, catalog: CatalogStore) -> None:
        self._catalog = catalog

    async def register_if_absent(
        self, scope: Scope, title: str, file_meta: dict | None = None
    ) -> bool:
        """Insert an ``indexed`` record for ``(scope, title)`` unless one exists.

        Args:
            scope: Brand (and optional model) the file belongs to.
            title: Derived document title.
            file_meta: Optional ``url`` and ``file_size`` for the new record.

        Returns:
            ``True`` if a record was created, ``False`` if one already existed.
        """
        existing = await self._catalog.find_record(scope.scope_id, title)
        if existing is not None:
            logger.info("Catalog already has %r under %s", title, scope.scope_id)
            return False

        meta = file_meta or {}
        await self._catalog.create_record(
            scope.brand_id,
            title,
            model_id=scope.model_id,
            url=meta.get("url", ""),
            file_size=meta.get("file_size", 0),
            status=RecordStatus.INDEXED,
        )
        logger.info("Registered %r under %s", title, scope.label)
        return True
