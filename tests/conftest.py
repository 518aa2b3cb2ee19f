"""Shared pytest fixtures for the ingestion console tests.

Provides a scripted fake RAG server (served through ``httpx.MockTransport``),
an ingestion config pointed at it, a temporary catalog with one brand, and
helpers to build in-memory PDF documents.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from elevex.catalog import CatalogStore
from elevex.ingest.client import RagServerClient
from elevex.models import IngestConfig, Scope, SourceDocument

_FILENAME_RE = re.compile(rb'filename="([^"]+)"')
_BRAND_RE = re.compile(rb'name="brandName"\r\n\r\n([^\r]*)\r\n')


class FakeRagServer:
    """Scripted stand-in for the RAG server.

    Attributes:
        duplicates: Names reported by ``/check-duplicates``.
        duplicate_check_status: HTTP status for ``/check-duplicates``.
        uploads: Per file name, a dict body, an ``int`` status code, or an
            exception class raised from the transport. Defaults to a fresh
            ``taskId`` of ``task-<name>``.
        jobs: Per task id, the sequence of status bodies; the last one
            repeats once the sequence is exhausted.
        total_documents: Value reported by ``/stats``.
        events: Ordered log of ``(kind, key)`` tuples for every request.
        requests: Every request received, in order.
    """

    def __init__(self) -> None:
        self.duplicates: list[str] = []
        self.duplicate_check_status = 200
        self.health_status = "ok"
        self.uploads: dict[str, object] = {}
        self.jobs: dict[str, list[object]] = {}
        self.total_documents = 0
        self.events: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.on_status = None
        self._job_cursor: dict[str, int] = {}

    # ------------------------------------------------------------------

    def script_job(self, file_name: str, *snapshots: object) -> None:
        self.jobs[f"task-{file_name}"] = list(snapshots)

    def uploaded(self) -> list[str]:
        return [key for kind, key in self.events if kind == "upload"]

    def status_calls(self, task_id: str) -> int:
        return sum(1 for kind, key in self.events if kind == "status" and key == task_id)

    # ------------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")

        if path == "/health":
            self.events.append(("health", ""))
            return httpx.Response(200, json={"status": self.health_status, "service": "rag"})

        if path == "/stats":
            self.events.append(("stats", ""))
            return httpx.Response(200, json={"totalDocuments": self.total_documents})

        if path == "/check-duplicates":
            names = json.loads(request.content)["fileNames"]
            self.events.append(("check", ",".join(names)))
            if self.duplicate_check_status != 200:
                return httpx.Response(self.duplicate_check_status, text="unavailable")
            dups = [n for n in self.duplicates if n in names]
            return httpx.Response(
                200,
                json={"duplicates": dups, "newFiles": [n for n in names if n not in dups]},
            )

        if path == "/upload":
            body = request.read()
            name = _FILENAME_RE.search(body).group(1).decode()
            self.events.append(("upload", name))
            scripted = self.uploads.get(name, {"taskId": f"task-{name}"})
            if isinstance(scripted, type) and issubclass(scripted, Exception):
                raise scripted("scripted failure", request=request)
            if isinstance(scripted, int):
                return httpx.Response(scripted, text="rejected")
            return httpx.Response(200, json=scripted)

        if path.startswith("/upload/status/"):
            task_id = path.rsplit("/", 1)[1]
            self.events.append(("status", task_id))
            if self.on_status is not None:
                self.on_status(task_id)
            script = self.jobs.get(task_id, [{"status": "done", "pages": 1, "chunks": 1}])
            index = self._job_cursor.get(task_id, 0)
            self._job_cursor[task_id] = index + 1
            step = script[min(index, len(script) - 1)]
            if isinstance(step, int):
                return httpx.Response(step, text="status error")
            return httpx.Response(200, json=step)

        return httpx.Response(404, text="unknown route")


def brand_name_of(request: httpx.Request) -> str | None:
    match = _BRAND_RE.search(request.read())
    return match.group(1).decode() if match else None


@pytest.fixture(autouse=True)
def no_keyring():
    """Keep tests away from the real system keyring."""
    with patch("elevex.config.keyring.get_password", return_value=None):
        yield


@pytest.fixture
def fake_server() -> FakeRagServer:
    return FakeRagServer()


@pytest.fixture
def ingest_config(tmp_path: Path) -> IngestConfig:
    return IngestConfig(
        server_url="http://rag.test/api",
        api_key="user-key",
        admin_key="admin-key",
        db_path=str(tmp_path / "catalog.db"),
        poll_interval_seconds=0,
        poll_max_attempts=5,
        display_window_seconds=60,
    )


@pytest.fixture
async def client(ingest_config: IngestConfig, fake_server: FakeRagServer):
    rag = RagServerClient(ingest_config, transport=httpx.MockTransport(fake_server.handler))
    yield rag
    await rag.close()


@pytest.fixture
async def catalog(ingest_config: IngestConfig):
    store = CatalogStore(ingest_config.db_path)
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
async def scope(catalog: CatalogStore) -> Scope:
    brand = await catalog.create_brand("Schindler")
    return Scope(brand_id=brand["id"], brand_name="Schindler")


def make_doc(name: str, size: int = 64) -> SourceDocument:
    return SourceDocument.from_bytes(name, b"%PDF-1.4\n" + b"x" * size)


async def no_sleep(seconds: float) -> None:
    return None
