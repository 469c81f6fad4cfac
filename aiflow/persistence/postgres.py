"""PostgreSQL implementation of the storage backend."""

from __future__ import annotations

import json
from typing import Any, Sequence

import asyncpg

from ..constants import EMBEDDINGS_TABLE
from ..exceptions import StorageError
from .filters import apply_filters, indexable_filters, order_rows, rank_embeddings
from .models import EmbeddingMatch, Filter
from .repository import Row, StorageBackend, as_rows, prepare_row


def _where(table: str, filters: Sequence[Filter] | None) -> tuple[str, list[Any]]:
    clauses = ["table_name = $1"]
    params: list[Any] = [table]
    for flt in indexable_filters(filters):
        if flt.field == "id":
            params.append(flt.value)
            clauses.append(f"id = ${len(params)}")
        else:
            params.extend([flt.field, flt.value])
            clauses.append(f"data->>(${len(params) - 1}::text) = ${len(params)}")
    return " AND ".join(clauses), params


class PostgresStorage(StorageBackend):
    """Persist rows as JSONB documents using PostgreSQL.

    String equality filters become ``data->>field = value`` predicates; the
    remaining filters run over the narrowed rows in Python.
    """

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        try:
            conn = await asyncpg.connect(self._dsn)
        except (OSError, asyncpg.PostgresError) as e:
            raise StorageError(f"Cannot connect to PostgreSQL: {e}") from e
        if self._initialized:
            return conn
        try:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    seq BIGSERIAL,
                    table_name TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data JSONB NOT NULL,
                    PRIMARY KEY (table_name, id)
                )
                """
            )
        except asyncpg.PostgresError as e:
            await conn.close()
            raise StorageError(f"Cannot create the records table: {e}") from e
        self._initialized = True
        return conn

    async def _load(
        self, conn: asyncpg.Connection, table: str, filters: Sequence[Filter] | None = None
    ) -> list[Row]:
        where, params = _where(table, filters)
        rows = await conn.fetch(f"SELECT data FROM records WHERE {where} ORDER BY seq", *params)
        return apply_filters((json.loads(r["data"]) for r in rows), filters)

    async def _write(
        self, conn: asyncpg.Connection, table: str, row: Row, replace: bool = True
    ) -> None:
        conflict = (
            " ON CONFLICT (table_name, id) DO UPDATE SET data = EXCLUDED.data" if replace else ""
        )
        await conn.execute(
            f"INSERT INTO records (table_name, id, data) VALUES ($1, $2, $3){conflict}",
            table,
            str(row["id"]),
            json.dumps(row, default=str),
        )

    async def _delete_rows(self, conn: asyncpg.Connection, table: str, rows: list[Row]) -> None:
        await conn.execute(
            "DELETE FROM records WHERE table_name = $1 AND id = ANY($2::text[])",
            table,
            [str(row["id"]) for row in rows],
        )

    # ------------------------------------------------------------------
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        conn = await self._connect()
        try:
            rows = await self._load(conn, table, filters)
        except asyncpg.PostgresError as e:
            raise StorageError(f"PostgreSQL read of {table} failed: {e}") from e
        finally:
            await conn.close()
        rows = order_rows(rows, order_by, descending)
        return rows[:limit] if limit is not None else rows

    async def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        stored = [prepare_row(r) for r in as_rows(rows)]
        conn = await self._connect()
        try:
            async with conn.transaction():
                for row in stored:
                    await self._write(conn, table, row, replace=False)
        except asyncpg.PostgresError as e:
            raise StorageError(f"PostgreSQL insert into {table} failed: {e}") from e
        finally:
            await conn.close()
        return stored

    async def update(
        self, table: str, values: Row, filters: Sequence[Filter]
    ) -> list[Row]:
        conn = await self._connect()
        try:
            async with conn.transaction():
                rows = await self._load(conn, table, filters)
                for row in rows:
                    row.update(values)
                    await self._write(conn, table, row)
        except asyncpg.PostgresError as e:
            raise StorageError(f"PostgreSQL update of {table} failed: {e}") from e
        finally:
            await conn.close()
        return rows

    async def upsert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        result = []
        conn = await self._connect()
        try:
            async with conn.transaction():
                for row in as_rows(rows):
                    current = None
                    if row.get("id") is not None:
                        found = await self._load(conn, table, [Filter.eq("id", row["id"])])
                        current = found[0] if found else None
                    merged = {**current, **row} if current is not None else prepare_row(row)
                    await self._write(conn, table, merged)
                    result.append(merged)
        except asyncpg.PostgresError as e:
            raise StorageError(f"PostgreSQL upsert into {table} failed: {e}") from e
        finally:
            await conn.close()
        return result

    async def delete(self, table: str, filters: Sequence[Filter]) -> list[Row]:
        conn = await self._connect()
        try:
            async with conn.transaction():
                rows = await self._load(conn, table, filters)
                if rows:
                    await self._delete_rows(conn, table, rows)
        except asyncpg.PostgresError as e:
            raise StorageError(f"PostgreSQL delete from {table} failed: {e}") from e
        finally:
            await conn.close()
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
