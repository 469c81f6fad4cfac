"""Data models shared by the storage backends."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

FilterOperator = Literal["eq", "neq", "gt", "lt", "gte", "lte", "like", "ilike", "in"]


class Filter(BaseModel):
    """A single row predicate: ``row[field] <operator> value``."""

    field: str
    operator: FilterOperator = "eq"
    value: Any = None

    @classmethod
    def eq(cls, field: str, value: Any) -> "Filter":
        return cls(field=field, operator="eq", value=value)


class EmbeddingMatch(BaseModel):
    """Row returned by a vector similarity search."""

    id: str
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity: float
