"""In-memory implementation of the storage backend."""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Dict, List, Sequence

from ..constants import EMBEDDINGS_TABLE
from .filters import apply_filters, order_rows, rank_embeddings
from .models import EmbeddingMatch, Filter
from .repository import Row, StorageBackend, as_rows, prepare_row


class InMemoryStorage(StorageBackend):
    """Store rows in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, List[Row]] = defaultdict(list)

    # ------------------------------------------------------------------
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        rows = order_rows(apply_filters(self._tables[table], filters), order_by, descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        stored = [prepare_row(copy.deepcopy(r)) for r in as_rows(rows)]
        self._tables[table].extend(stored)
        return copy.deepcopy(stored)

    async def update(
        self, table: str, values: Row, filters: Sequence[Filter]
    ) -> list[Row]:
        updated = []
        for row in apply_filters(self._tables[table], filters):
            row.update(copy.deepcopy(values))
            updated.append(row)
        return copy.deepcopy(updated)

    async def upsert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        result = []
        existing = {r["id"]: r for r in self._tables[table]}
        for row in as_rows(rows):
            current = existing.get(row.get("id"))
            if current is not None:
                current.update(copy.deepcopy(row))
                result.append(current)
            else:
                stored = prepare_row(copy.deepcopy(row))
                self._tables[table].append(stored)
                existing[stored["id"]] = stored
                result.append(stored)
        return copy.deepcopy(result)

    async def delete(self, table: str, filters: Sequence[Filter]) -> list[Row]:
        doomed = apply_filters(self._tables[table], filters)
        doomed_ids = {id(r) for r in doomed}
        self._tables[table] = [r for r in self._tables[table] if id(r) not in doomed_ids]
        return copy.deepcopy(doomed)

    async def match_embeddings(
        self,
        query_embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        user_id: str | None = None,
    ) -> list[EmbeddingMatch]:
        filters = [Filter.eq("user_id", user_id)] if user_id else []
        rows = apply_filters(self._tables[EMBEDDINGS_TABLE], filters)
        return rank_embeddings(rows, query_embedding, match_threshold, match_count)
