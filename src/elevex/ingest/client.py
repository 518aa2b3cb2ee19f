"""HTTP client for the RAG document-processing server.

Thin async wrapper over ``httpx.AsyncClient`` exposing the endpoints the
ingestion console consumes:

* ``GET  /health``                 -- connectivity indicator
* ``GET  /stats``                  -- vector store counts (reconcile)
* ``POST /check-duplicates``       -- batch duplicate lookup
* ``POST /upload``                 -- multipart PDF upload, returns a job handle
* ``GET  /upload/status/{taskId}`` -- job snapshot

Transport failures on upload are translated into the
:mod:`elevex.ingest.exceptions` taxonomy so the operator can tell a slow
server from an unreachable one. The other calls raise ``httpx`` errors
or :class:`ServerRejectedError` and leave the policy to their callers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from elevex.ingest.exceptions import (
    ServerRejectedError,
    ServerUnavailableError,
    UploadTimeoutError,
)
from elevex.ingest.schemas import (
    BackendJobSnapshot,
    DuplicateCheckResponse,
    HealthResponse,
    StatsResponse,
    UploadResponse,
)
from elevex.models import IngestConfig, SourceDocument

logger = logging.getLogger(__name__)


class RagServerClient:
    """Async client for the RAG server.

    Usage::

        async with RagServerClient(config) as client:
            health = await client.health()
            accepted = await client.upload(document, brand_name="Schindler")
            snapshot = await client.get_job_status(accepted.task_id)

    Args:
        config: Ingestion configuration (server URL, keys, timeouts).
        transport: Optional ``httpx`` transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: IngestConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.request_timeout_seconds,
            headers=dict(config.extra_headers),
            transport=transport,
        )

    async def __aenter__(self) -> RagServerClient:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _headers(self, admin: bool = False) -> dict[str, str]:
        """Auth header for a request; admin routes prefer the admin key."""
        if admin:
            key = self._config.admin_key or self._config.api_key
        else:
            key = self._config.api_key
        if not key:
            return {}
        return {"x-api-key": key}

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        raise ServerRejectedError(
            f"Error {response.status_code}: {response.text}",
            status_code=response.status_code,
        )

    @staticmethod
    def _parse(model: type, response: httpx.Response) -> Any:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ServerRejectedError(
                f"Unexpected response from {response.request.url.path}: {exc}",
                status_code=response.status_code,
            ) from exc

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def health(self) -> HealthResponse:
        """Fetch server health with the short health-check timeout."""
        response = await self._client.get(
            "/health",
            headers=self._headers(),
            timeout=self._config.health_timeout_seconds,
        )
        self._raise_for_status(response)
        return self._parse(HealthResponse, response)

    async def is_online(self) -> bool:
        """Return ``True`` when the server reports ``ok`` or ``loading``."""
        try:
            health = await self.health()
        except Exception as exc:
            logger.warning("Health check failed: %s", exc)
            return False
        logger.debug("Server health: %s", health.status)
        return health.is_online

    async def stats(self) -> StatsResponse:
        response = await self._client.get("/stats", headers=self._headers())
        self._raise_for_status(response)
        return self._parse(StatsResponse, response)

    async def check_duplicates(self, file_names: list[str]) -> list[str]:
        """Ask the server which of *file_names* are already indexed."""
        response = await self._client.post(
            "/check-duplicates",
            json={"fileNames": file_names},
            headers=self._headers(admin=True),
        )
        self._raise_for_status(response)
        result = self._parse(DuplicateCheckResponse, response)
        logger.debug("check-duplicates: %d of %d indexed", len(result.duplicates), len(file_names))
        return result.duplicates

    async def upload(
        self, document: SourceDocument, brand_name: str | None = None
    ) -> UploadResponse:
        """Upload one PDF as multipart form data.

        Raises:
            UploadTimeoutError: The upload exceeded ``upload_timeout_seconds``.
            ServerUnavailableError: The server could not be reached.
            ServerRejectedError: Non-2xx status or malformed body.
        """
        files = {"pdf": (document.name, document.read_bytes(), "application/pdf")}
        data = {"brandName": brand_name} if brand_name else None
        timeout = self._config.upload_timeout_seconds

        logger.info("Uploading %s to %s", document.name, self._config.server_url)
        # httpx timeouts apply per phase; wait_for caps the whole request.
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    "/upload",
                    files=files,
                    data=data,
                    headers=self._headers(admin=True),
                    timeout=timeout,
                ),
                timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise UploadTimeoutError(
                f"Upload timed out (>{timeout:g}s). The server may be overloaded."
            ) from exc
        except httpx.TransportError as exc:
            raise ServerUnavailableError(
                f"Connection error: {exc}. Check that the server is online."
            ) from exc

        self._raise_for_status(response)
        return self._parse(UploadResponse, response)

    async def get_job_status(self, task_id: str) -> BackendJobSnapshot:
        """Fetch the current snapshot of a backend job."""
        response = await self._client.get(
            f"/upload/status/{task_id}",
            headers=self._headers(admin=True),
        )
        self._raise_for_status(response)
        return self._parse(BackendJobSnapshot, response)
