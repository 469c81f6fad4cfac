"""Repository abstraction for row-level storage."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from .models import EmbeddingMatch, Filter

Row = dict[str, Any]


def prepare_row(row: Row) -> Row:
    """Return a copy of ``row`` with ``id`` and ``created_at`` filled in."""
    prepared = dict(row)
    if prepared.get("id") is None:
        prepared["id"] = str(uuid.uuid4())
    prepared.setdefault("created_at", datetime.now(timezone.utc).isoformat())
    return prepared


def as_rows(rows: Row | Sequence[Row]) -> list[Row]:
    """Normalise a single row or a sequence of rows into a list."""
    if isinstance(rows, dict):
        return [rows]
    return list(rows)


class StorageBackend(Protocol):
    """Protocol for row storage backends.

    Tables are created on first write. Every row carries a string ``id``.
    """

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows of ``table`` matching every filter."""

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        """Insert rows and return them as stored."""

    async def update(
        self, table: str, values: Row, filters: Sequence[Filter]
    ) -> list[Row]:
        """Merge ``values`` into matching rows and return the updated rows."""

    async def upsert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        """Insert rows or merge them into existing rows with the same ``id``."""

    async def delete(self, table: str, filters: Sequence[Filter]) -> list[Row]:
        """Delete matching rows and return them."""

    async def match_embeddings(
        self,
        query_embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        user_id: str | None = None,
    ) -> list[EmbeddingMatch]:
        """Return stored embeddings most similar to ``query_embedding``."""
