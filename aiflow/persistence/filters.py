"""Row predicates and vector similarity helpers used by every backend."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Sequence

from .models import EmbeddingMatch, Filter


def like_to_regex(pattern: str, case_insensitive: bool = False) -> re.Pattern[str]:
    """Translate a SQL ``LIKE`` pattern (``%`` and ``_``) into a regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL | (re.IGNORECASE if case_insensitive else 0)
    return re.compile("^" + "".join(parts) + "$", flags)


def _compare(left: Any, right: Any, op: str) -> bool:
    if left is None or right is None:
        return False
    try:
        if op == "gt":
            return left > right
        if op == "lt":
            return left < right
        if op == "gte":
            return left >= right
        return left <= right
    except TypeError:
        return False


def matches(row: dict[str, Any], flt: Filter) -> bool:
    """Return ``True`` when ``row`` satisfies ``flt``."""
    value = row.get(flt.field)
    op = flt.operator
    if op == "eq":
        return value == flt.value
    if op == "neq":
        return value != flt.value
    if op in ("gt", "lt", "gte", "lte"):
        return _compare(value, flt.value, op)
    if op in ("like", "ilike"):
        if value is None:
            return False
        regex = like_to_regex(str(flt.value), case_insensitive=op == "ilike")
        return regex.match(str(value)) is not None
    if op == "in":
        return value in (flt.value or [])
    raise ValueError(f"Unsupported filter operator: {op}")


_FIELD_NAME = re.compile(r"^\w+$")


def indexable_filters(filters: Sequence[Filter] | None) -> list[Filter]:
    """The filters a SQL backend can evaluate against the JSON document.

    Only string equality on a top-level field qualifies; the text comparison
    in SQL agrees with :func:`matches` for those. Everything else is still
    applied in Python.
    """
    return [
        f
        for f in filters or []
        if f.operator == "eq" and isinstance(f.value, str) and _FIELD_NAME.match(f.field)
    ]


def apply_filters(
    rows: Iterable[dict[str, Any]], filters: Sequence[Filter] | None
) -> list[dict[str, Any]]:
    """Return the rows that satisfy every filter."""
    filters = filters or []
    return [row for row in rows if all(matches(row, f) for f in filters)]


def order_rows(
    rows: list[dict[str, Any]], order_by: str | None, descending: bool = False
) -> list[dict[str, Any]]:
    """Sort rows by ``order_by``; rows missing the field sort last."""
    if not order_by:
        return rows
    present = [r for r in rows if r.get(order_by) is not None]
    missing = [r for r in rows if r.get(order_by) is None]
    present.sort(key=lambda r: r[order_by], reverse=descending)
    return present + missing


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def rank_embeddings(
    rows: Iterable[dict[str, Any]],
    query_embedding: Sequence[float],
    threshold: float,
    count: int,
) -> list[EmbeddingMatch]:
    """Score embedding rows against the query, best first.

    Rows below ``threshold`` are dropped and at most ``count`` are kept.
    """
    scored: list[EmbeddingMatch] = []
    for row in rows:
        vector = row.get("vector_data") or []
        similarity = cosine_similarity(query_embedding, vector)
        if similarity < threshold:
            continue
        metadata = row.get("metadata") or {}
        scored.append(
            EmbeddingMatch(
                id=str(row["id"]),
                content=metadata.get("content"),
                metadata=metadata,
                similarity=similarity,
            )
        )
    scored.sort(key=lambda m: m.similarity, reverse=True)
    return scored[:count]
