"""Built-in functions for ``custom`` workflow steps."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import AiflowError, UnsupportedOperationError
from ..persistence import Filter, StorageBackend
from ..persistence.filters import order_rows
from ..substitution import stringify
from .branching import evaluate_condition

logger = logging.getLogger(__name__)

STORAGE_SOURCES = ("storage", "supabase")
ITEM_PREFIX = "item."


# ----------------------------------------------------------------------
# transform_data


def _filter(rows: List[Dict[str, Any]], config: Dict[str, Any]) -> List[Dict[str, Any]]:
    field, op, value = config["field"], config["operator"], config.get("value")
    return [row for row in rows if evaluate_condition(row.get(field), op, value)]


def _map(rows: List[Dict[str, Any]], config: Dict[str, Any]) -> List[Dict[str, Any]]:
    mapped = []
    for row in rows:
        new_row = dict(row)
        for key, value in config.get("mapping", {}).items():
            if isinstance(value, str) and value.startswith(ITEM_PREFIX):
                new_row[key] = row.get(value[len(ITEM_PREFIX) :])
            else:
                new_row[key] = value
        mapped.append(new_row)
    return mapped


def _sort(rows: List[Dict[str, Any]], config: Dict[str, Any]) -> List[Dict[str, Any]]:
    return order_rows(rows, config["field"], descending=config.get("order") != "asc")


def _group(rows: List[Dict[str, Any]], config: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Group rows by ``field`` and aggregate with count, sum, avg, min or max.

    ``avg`` over a group with no numeric values is ``None``.
    """
    field = config["field"]
    aggregations = config.get("aggregations", [])
    groups: Dict[str, Dict[str, Any]] = {}
    averages: Dict[str, Dict[str, List[float]]] = {}

    for row in rows:
        key_value = row.get(field)
        key = stringify(key_value)
        if key not in groups:
            groups[key] = {field: key_value, "items": []}
            averages[key] = {}
            for agg in aggregations:
                groups[key][agg["name"]] = 0 if agg["type"] == "count" else None
        group = groups[key]
        group["items"].append(row)

        for agg in aggregations:
            name, kind = agg["name"], agg["type"]
            value = row.get(agg.get("field", ""))
            if kind == "count":
                group[name] += 1
            elif kind == "avg":
                if value is not None:
                    averages[key].setdefault(name, []).append(value)
            elif value is None:
                continue
            elif kind == "sum":
                group[name] = (group[name] or 0) + value
            elif kind == "min":
                if group[name] is None or value < group[name]:
                    group[name] = value
            elif kind == "max":
                if group[name] is None or value > group[name]:
                    group[name] = value
            else:
                raise UnsupportedOperationError(f"Unsupported aggregation type: {kind}")

    for key, group in groups.items():
        for agg in aggregations:
            if agg["type"] == "avg":
                values = averages[key].get(agg["name"], [])
                group[agg["name"]] = sum(values) / len(values) if values else None

    return list(groups.values())


TRANSFORMATIONS = {
    "filter": _filter,
    "map": _map,
    "sort": _sort,
    "group": _group,
}


def transform_data(parameters: Dict[str, Any]) -> Any:
    """Run an ordered pipeline of transformations over ``parameters['data']``.

    Transformations only apply to lists; a mapping passes through unchanged.
    """
    data = parameters.get("data")
    result: Any = list(data) if isinstance(data, list) else dict(data or {})

    for transformation in parameters.get("transformations") or []:
        kind = transformation.get("type")
        handler = TRANSFORMATIONS.get(kind)
        if handler is None:
            raise UnsupportedOperationError(f"Unsupported transformation type: {kind}")
        if isinstance(result, list):
            result = handler(result, transformation.get("config") or {})
    return result


# ----------------------------------------------------------------------
# fetch_data / save_data


class CustomFunctions:
    """``fetch_data`` and ``save_data`` bound to storage and an HTTP client."""

    def __init__(
        self, storage: StorageBackend, http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.storage = storage
        self.http_client = http_client

    async def run(self, function_name: str, parameters: Dict[str, Any]) -> Any:
        if function_name == "fetch_data":
            return await self.fetch_data(parameters)
        if function_name == "transform_data":
            return transform_data(parameters)
        if function_name == "save_data":
            return await self.save_data(parameters)
        raise UnsupportedOperationError(f"Unsupported custom function: {function_name}")

    async def fetch_data(self, parameters: Dict[str, Any]) -> Any:
        source = parameters.get("source")
        query = parameters.get("query") or {}

        if source in STORAGE_SOURCES:
            filters = [Filter.model_validate(f) for f in parameters.get("filters") or []]
            return await self.storage.select(query["table"], filters)

        if source == "api":
            return await self._fetch_api(query)

        raise UnsupportedOperationError(f"Unsupported data source: {source}")

    async def _fetch_api(self, query: Dict[str, Any]) -> Any:
        method = query.get("method", "GET")
        logger.debug(f"{method} {query['url']}")
        if self.http_client is not None:
            response = await self._request(self.http_client, method, query)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._request(client, method, query)
        if not response.is_success:
            raise AiflowError(f"API request failed: {response.reason_phrase}")
        return response.json()

    @staticmethod
    async def _request(
        client: httpx.AsyncClient, method: str, query: Dict[str, Any]
    ) -> httpx.Response:
        return await client.request(
            method,
            query["url"],
            headers=query.get("headers") or {},
            json=query.get("body"),
        )

    async def save_data(self, parameters: Dict[str, Any]) -> Any:
        destination = parameters.get("destination")
        data = parameters.get("data")

        if destination == "file":
            return {"success": True, "message": "Data saved to file (simulated)", "data": data}

        if destination not in STORAGE_SOURCES:
            raise UnsupportedOperationError(f"Unsupported data destination: {destination}")

        table = parameters["table"]
        operation = parameters.get("operation")
        if operation == "insert":
            return await self.storage.insert(table, data)
        if operation == "upsert":
            return await self.storage.upsert(table, data)
        if operation in ("update", "delete"):
            match = [Filter.eq(parameters["match_field"], parameters.get("match_value"))]
            if operation == "update":
                return await self.storage.update(table, data, match)
            return await self.storage.delete(table, match)
        raise UnsupportedOperationError(f"Unsupported database operation: {operation}")
