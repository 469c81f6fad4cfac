"""SQLite implementation of the storage backend."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Sequence

from ..constants import EMBEDDINGS_TABLE
from ..exceptions import StorageError
from .filters import apply_filters, indexable_filters, order_rows, rank_embeddings
from .models import EmbeddingMatch, Filter
from .repository import Row, StorageBackend, as_rows, prepare_row


def _where(table: str, filters: Sequence[Filter] | None) -> tuple[str, list[Any]]:
    clauses = ["table_name = ?"]
    params: list[Any] = [table]
    for flt in indexable_filters(filters):
        if flt.field == "id":
            clauses.append("id = ?")
            params.append(flt.value)
        else:
            clauses.append("json_extract(data, ?) = ?")
            params.extend([f"$.{flt.field}", flt.value])
    return " AND ".join(clauses), params


class SQLiteStorage(StorageBackend):
    """Persist rows as JSON documents in a single SQLite table.

    String equality filters are evaluated by SQLite through ``json_extract``;
    the remaining filters run over the narrowed rows in Python.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open SQLite database {self.db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                table_name TEXT NOT NULL,
                id TEXT NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (table_name, id)
            )
            """
        )

    # ------------------------------------------------------------------
    # Blocking helpers, run through asyncio.to_thread
    def _execute(self, query: str, *params: Any) -> None:
        try:
            self._conn.execute(query, params)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(f"SQLite write failed: {e}") from e

    def _load(self, table: str, filters: Sequence[Filter] | None = None) -> list[Row]:
        where, params = _where(table, filters)
        try:
            rows = self._conn.execute(
                f"SELECT data FROM records WHERE {where} ORDER BY rowid", params
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite read of {table} failed: {e}") from e
        return apply_filters((json.loads(r["data"]) for r in rows), filters)

    def _write(self, table: str, row: Row, replace: bool = True) -> None:
        conflict = " ON CONFLICT(table_name, id) DO UPDATE SET data = excluded.data" if replace else ""
        self._execute(
            f"INSERT INTO records (table_name, id, data) VALUES (?, ?, ?){conflict}",
            table,
            str(row["id"]),
            json.dumps(row, default=str),
        )

    # ------------------------------------------------------------------
    # Storage API
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        rows = order_rows(await asyncio.to_thread(self._load, table, filters), order_by, descending)
        return rows[:limit] if limit is not None else rows

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        stored = [prepare_row(r) for r in as_rows(rows)]
        for row in stored:
            await asyncio.to_thread(self._write, table, row, False)
        return stored

    async def update(
        self, table: str, values: Row, filters: Sequence[Filter]
    ) -> list[Row]:
        rows = await asyncio.to_thread(self._load, table, filters)
        for row in rows:
            row.update(values)
            await asyncio.to_thread(self._write, table, row)
        return rows

    async def upsert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        result = []
        for row in as_rows(rows):
            current = None
            if row.get("id") is not None:
                found = await asyncio.to_thread(
                    self._load, table, [Filter.eq("id", row["id"])]
                )
                current = found[0] if found else None
            merged = {**current, **row} if current is not None else prepare_row(row)
            await asyncio.to_thread(self._write, table, merged)
            result.append(merged)
        return result

    async def delete(self, table: str, filters: Sequence[Filter]) -> list[Row]:
        rows = await asyncio.to_thread(self._load, table, filters)
        for row in rows:
            await asyncio.to_thread(
                self._execute,
                "DELETE FROM records WHERE table_name = ? AND id = ?",
                table,
                str(row["id"]),
            )
        return rows

    async def match_embeddings(
        self,
        query_embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        user_id: str | None = None,
    ) -> list[EmbeddingMatch]:
        filters = [Filter.eq("user_id", user_id)] if user_id else None
        rows = await self.select(EMBEDDINGS_TABLE, filters)
        return rank_embeddings(rows, query_embedding, match_threshold, match_count)
