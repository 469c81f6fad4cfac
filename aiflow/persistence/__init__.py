"""Storage backends and the process-wide storage handle."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..config import AiflowConfig, load_config
from ..exceptions import ConfigurationError
from .inmemory import InMemoryStorage
from .models import EmbeddingMatch, Filter
from .postgres import PostgresStorage
from .repository import StorageBackend
from .sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

BACKENDS: Dict[str, Callable[[str], StorageBackend]] = {
    "sqlite": lambda url: SQLiteStorage(url.split("://", 1)[1]),
    "postgres": PostgresStorage,
    "postgresql": PostgresStorage,
}

_storage_instance: StorageBackend | None = None


def open_storage(database_url: Optional[str]) -> StorageBackend:
    """Build a backend for ``database_url``; no URL means in-memory storage."""
    if not database_url:
        return InMemoryStorage()
    scheme = database_url.split("://", 1)[0].lower() if "://" in database_url else ""
    factory = BACKENDS.get(scheme)
    if factory is None:
        raise ConfigurationError(f"Unsupported database backend: {database_url}")
    logger.info(f"Using {scheme} storage")
    return factory(database_url)


def get_storage(config: Optional[AiflowConfig] = None) -> StorageBackend:
    """Return the shared backend, opening it from ``config.database_url`` on first use."""
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = open_storage((config or load_config()).database_url)
    return _storage_instance


__all__ = [
    "BACKENDS",
    "EmbeddingMatch",
    "Filter",
    "StorageBackend",
    "InMemoryStorage",
    "SQLiteStorage",
    "PostgresStorage",
    "get_storage",
    "open_storage",
]
