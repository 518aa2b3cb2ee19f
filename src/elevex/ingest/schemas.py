"""Pydantic models for RAG server responses."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Backend job stage as reported by ``/upload/status/{taskId}``."""

    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    SAVING = "saving"
    DONE = "done"
    ERROR = "error"
    NOT_FOUND = "not_found"


TERMINAL_JOB_STATUSES: frozenset[str] = frozenset(
    {JobStatus.DONE.value, JobStatus.ERROR.value, JobStatus.NOT_FOUND.value}
)


class BackendJobSnapshot(BaseModel):
    """Point-in-time read of a backend job.

    ``status`` is kept as a plain string so an unexpected stage name from
    the server is treated as non-terminal instead of failing validation.
    """

    status: str
    message: str | None = None
    progress: float | None = None
    pages: int | None = None
    chunks: int | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class UploadResponse(BaseModel):
    """Body of a successful ``POST /upload``."""

    task_id: str | None = Field(default=None, alias="taskId")
    skipped: bool = False
    message: str | None = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class DuplicateCheckResponse(BaseModel):
    """Body of ``POST /check-duplicates``."""

    duplicates: list[str] = Field(default_factory=list)
    new_files: list[str] = Field(default_factory=list, alias="newFiles")
    loading: bool = False

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class HealthResponse(BaseModel):
    """Body of ``GET /health``."""

    status: str
    service: str | None = None
    loading: bool = False

    model_config = ConfigDict(extra="ignore")

    @property
    def is_online(self) -> bool:
        return self.status in ("ok", "loading")


class StatsResponse(BaseModel):
    """Body of ``GET /stats``."""

    total_documents: int = Field(default=0, alias="totalDocuments")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
