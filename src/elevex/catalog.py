"""Async SQLite catalog of brands, models and indexed source files.

Wraps aiosqlite to provide the metadata store the ingestion console
reconciles against. Each write method commits immediately -- no
transactions are held across ``await`` boundaries.

Records are keyed by ``(brand_id, title)``. Uniqueness is maintained by
callers with check-then-insert (see :mod:`elevex.ingest.registrar`);
the schema deliberately carries no unique index on that pair.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from elevex.models import MetadataRecord, RecordStatus

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS brands (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS models (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL REFERENCES brands(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS source_files (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL REFERENCES brands(id) ON DELETE CASCADE,
    model_id TEXT REFERENCES models(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    url TEXT NOT NULL DEFAULT '',
    file_size INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK(status IN ('pending', 'processing', 'indexed', 'error')),
    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_source_files_scope_title ON source_files(brand_id, title);
CREATE INDEX IF NOT EXISTS idx_source_files_title ON source_files(title);
CREATE INDEX IF NOT EXISTS idx_models_brand ON models(brand_id);
"""


class CatalogError(Exception):
    """Raised when a catalog operation cannot be completed."""


class CatalogStore:
    """Async catalog store.

    Usage::

        async with CatalogStore("data/catalog.db") as catalog:
            brand = await catalog.create_brand("Schindler")
            record = await catalog.find_record(brand["id"], "Manual 3300")
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection and make sure the schema exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> CatalogStore:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Not connected -- use 'async with' or call connect()")
        return self._db

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        db = self._ensure_connected()
        cursor = await db.execute(sql, params)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _fetch_one(self, sql: str, params: tuple = ()) -> dict | None:
        db = self._ensure_connected()
        cursor = await db.execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row is not None else None

    # ------------------------------------------------------------------
    # Brands and models
    # ------------------------------------------------------------------

    async def create_brand(self, name: str) -> dict:
        """Insert a brand and return its row.

        Raises:
            CatalogError: If a brand with the same name already exists.
        """
        db = self._ensure_connected()
        brand_id = self._new_id()
        try:
            await db.execute(
                "INSERT INTO brands (id, name) VALUES (?, ?)", (brand_id, name)
            )
        except aiosqlite.IntegrityError as exc:
            raise CatalogError(f"Brand {name!r} already exists") from exc
        await db.commit()
        logger.info("Created brand %s (%s)", name, brand_id)
        return {"id": brand_id, "name": name}

    async def get_brand(self, brand_id: str) -> dict | None:
        return await self._fetch_one("SELECT * FROM brands WHERE id = ?", (brand_id,))

    async def find_brand(self, name: str) -> dict | None:
        return await self._fetch_one("SELECT * FROM brands WHERE name = ?", (name,))

    async def list_brands(self) -> list[dict]:
        return await self._fetch_all("SELECT * FROM brands ORDER BY name")

    async def delete_brand(self, brand_id: str) -> None:
        """Delete a brand; its models and source file records cascade."""
        db = self._ensure_connected()
        await db.execute("DELETE FROM brands WHERE id = ?", (brand_id,))
        await db.commit()
        logger.info("Deleted brand %s (cascade)", brand_id)

    async def create_model(self, brand_id: str, name: str) -> dict:
        db = self._ensure_connected()
        if await self.get_brand(brand_id) is None:
            raise CatalogError(f"Unknown brand id {brand_id!r}")
        model_id = self._new_id()
        await db.execute(
            "INSERT INTO models (id, brand_id, name) VALUES (?, ?, ?)",
            (model_id, brand_id, name),
        )
        await db.commit()
        logger.info("Created model %s under brand %s", name, brand_id)
        return {"id": model_id, "brand_id": brand_id, "name": name}

    async def find_model(self, brand_id: str, name: str) -> dict | None:
        return await self._fetch_one(
            "SELECT * FROM models WHERE brand_id = ? AND name = ?", (brand_id, name)
        )

    async def list_models(self, brand_id: str) -> list[dict]:
        return await self._fetch_all(
            "SELECT * FROM models WHERE brand_id = ? ORDER BY name", (brand_id,)
        )

    # ------------------------------------------------------------------
    # Source file records
    # ------------------------------------------------------------------

    async def create_record(
        self,
        brand_id: str,
        title: str,
        *,
        model_id: str | None = None,
        url: str = "",
        file_size: int = 0,
        status: RecordStatus = RecordStatus.INDEXED,
    ) -> MetadataRecord:
        """Insert a source file record and return it."""
        db = self._ensure_connected()
        record_id = self._new_id()
        now = self._now_iso()
        try:
            await db.execute(
                """INSERT INTO source_files
                       (id, brand_id, model_id, title, url, file_size, status, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (record_id, brand_id, model_id, title, url, file_size, status.value, now),
            )
        except aiosqlite.IntegrityError as exc:
            raise CatalogError(f"Cannot create record {title!r}: {exc}") from exc
        await db.commit()
        logger.debug("Created record %s for %s/%s", record_id, brand_id, title)
        return MetadataRecord(
            id=record_id,
            brand_id=brand_id,
            title=title,
            url=url,
            model_id=model_id,
            file_size=file_size,
            status=status,
            created_at=now,
        )

    async def find_record(self, brand_id: str, title: str) -> MetadataRecord | None:
        """Return the first record for ``(brand_id, title)`` or ``None``."""
        row = await self._fetch_one(
            """SELECT * FROM source_files
               WHERE brand_id = ? AND title = ?
               ORDER BY created_at
               LIMIT 1""",
            (brand_id, title),
        )
        return MetadataRecord.from_row(row) if row else None

    async def find_titles(self, titles: list[str]) -> set[str]:
        """Return which of *titles* have a record under any scope."""
        if not titles:
            return set()
        placeholders = ", ".join("?" for _ in titles)
        rows = await self._fetch_all(
            f"SELECT DISTINCT title FROM source_files WHERE title IN ({placeholders})",
            tuple(titles),
        )
        return {row["title"] for row in rows}

    async def list_records(self, brand_id: str | None = None) -> list[MetadataRecord]:
        if brand_id is None:
            rows = await self._fetch_all(
                "SELECT * FROM source_files ORDER BY brand_id, title"
            )
        else:
            rows = await self._fetch_all(
                "SELECT * FROM source_files WHERE brand_id = ? ORDER BY title",
                (brand_id,),
            )
        return [MetadataRecord.from_row(row) for row in rows]

    async def count_records(self, brand_id: str, title: str) -> int:
        row = await self._fetch_one(
            "SELECT COUNT(*) AS n FROM source_files WHERE brand_id = ? AND title = ?",
            (brand_id, title),
        )
        return row["n"] if row else 0

    async def update_record_status(self, record_id: str, status: RecordStatus) -> bool:
        """Update a record's status. Returns ``False`` if no row matched."""
        db = self._ensure_connected()
        cursor = await db.execute(
            "UPDATE source_files SET status = ? WHERE id = ?",
            (status.value, record_id),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def delete_records_for_scope(
        self, brand_id: str, model_id: str | None = None
    ) -> int:
        """Delete all records under a brand (or one of its models)."""
        db = self._ensure_connected()
        if model_id is None:
            cursor = await db.execute(
                "DELETE FROM source_files WHERE brand_id = ?", (brand_id,)
            )
        else:
            cursor = await db.execute(
                "DELETE FROM source_files WHERE brand_id = ? AND model_id = ?",
                (brand_id, model_id),
            )
        await db.commit()
        logger.info("Deleted %d records for scope %s/%s", cursor.rowcount, brand_id, model_id)
        return cursor.rowcount

    async def delete_records_by_status(self, status: RecordStatus) -> int:
        db = self._ensure_connected()
        cursor = await db.execute(
            "DELETE FROM source_files WHERE status = ?", (status.value,)
        )
        await db.commit()
        logger.info("Deleted %d records with status %s", cursor.rowcount, status.value)
        return cursor.rowcount
