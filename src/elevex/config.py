"""Configuration loading for the ingestion console."""

from __future__ import annotations

import json
import os
from pathlib import Path

import keyring

from elevex.models import IngestConfig

SERVICE_NAME = "elevex-rag"
API_KEY_NAME = "api_key"
ADMIN_KEY_NAME = "admin_key"

DEFAULT_CONFIG_PATH = Path("config/ingest_config.json")


def _lookup_key(key_name: str, env_var: str) -> str | None:
    """System keyring first, then the environment variable."""
    value = keyring.get_password(SERVICE_NAME, key_name)
    if value:
        return value
    return os.environ.get(env_var) or None


def get_api_key() -> str | None:
    """Return the RAG server API key, or ``None`` when none is configured."""
    return _lookup_key(API_KEY_NAME, "RAG_API_KEY")


def get_admin_key() -> str:
    """Return the admin key used for upload routes, falling back to the API key.

    Raises:
        RuntimeError: If neither key is found, with setup instructions.
    """
    key = _lookup_key(ADMIN_KEY_NAME, "RAG_ADMIN_KEY") or get_api_key()
    if key:
        return key

    raise RuntimeError(
        "RAG server key not found.\n"
        "Set it with: elevex config set-key YOUR_KEY --admin\n"
        "Or: export RAG_ADMIN_KEY=your-key"
    )


def load_ingest_config(config_path: Path | None = None) -> IngestConfig:
    """Load ingestion configuration from JSON, falling back to defaults.

    Reads ``config/ingest_config.json`` when *config_path* is ``None``.
    Unknown keys are ignored. ``RAG_SERVER_URL`` overrides the server URL,
    and keys not present in the file come from the system keyring
    (service ``elevex-rag``) or the ``RAG_API_KEY`` / ``RAG_ADMIN_KEY``
    environment variables.

    Args:
        config_path: Optional explicit path to ingest_config.json.

    Returns:
        IngestConfig populated from file, environment and keyring.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    field_names = {f.name for f in IngestConfig.__dataclass_fields__.values()}
    kwargs = {k: v for k, v in data.items() if k in field_names}

    config = IngestConfig(**kwargs)

    server_url = os.environ.get("RAG_SERVER_URL")
    if server_url:
        config.server_url = server_url
    config.server_url = config.server_url.rstrip("/")

    if config.api_key is None:
        config.api_key = get_api_key()
    if config.admin_key is None:
        config.admin_key = _lookup_key(ADMIN_KEY_NAME, "RAG_ADMIN_KEY")

    return config
