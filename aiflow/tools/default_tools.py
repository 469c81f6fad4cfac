from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict, List, Optional

from ..analysis import analyze
from ..codegen import CodeGenerationRequest, CodeGenerator
from ..config import AiflowConfig
from ..constants import (
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    PACKAGES_TABLE,
)
from ..embeddings import EmbeddingService
from ..gateways import GatewayFactory
from ..optimizer import SupplyChainOptimizer
from ..persistence import Filter, StorageBackend
from .registry import Tool, ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

QUERY_ROW_LIMIT = 100
SHIPPING_BASE_RATE = 10.0
SHIPPING_WEIGHT_RATE = 0.5
SHIPPING_DISTANCE_FACTOR = 0.01
DIMENSIONAL_DIVISOR = 166
SERVICE_MULTIPLIERS = {"expedited": 1.5, "overnight": 2.5}

_DIMENSIONS = {
    "length": {"type": "number"},
    "width": {"type": "number"},
    "height": {"type": "number"},
}


async def query_database(storage: StorageBackend, params: Dict[str, Any]) -> Dict[str, Any]:
    """Read-only select against a named table."""
    filters = [Filter.model_validate(f) for f in params.get("filters") or []]
    rows = await storage.select(
        params["table"],
        filters,
        order_by=params.get("order_by"),
        descending=bool(params.get("descending", False)),
        limit=params.get("limit") or QUERY_ROW_LIMIT,
    )
    return {"results": rows}


async def _available_packages(storage: StorageBackend) -> List[Dict[str, Any]]:
    rows = await storage.select(PACKAGES_TABLE, [Filter.eq("status", "available")])
    packages = []
    for row in rows:
        dimensions = row.get("dimensions") or {}
        packages.append(
            {
                "id": row.get("package_id") or row["id"],
                "length": dimensions.get("length", 0),
                "width": dimensions.get("width", 0),
                "height": dimensions.get("height", 0),
                "weight_capacity": row.get("weight_capacity", 0),
            }
        )
    return packages


async def optimize_packaging(storage: StorageBackend, params: Dict[str, Any]) -> Dict[str, Any]:
    """Pack items, falling back to available reusable packages."""
    packages = params.get("available_packages") or await _available_packages(storage)
    solution = SupplyChainOptimizer().optimize_packaging(params["items"], packages)
    return solution.model_dump()


async def estimate_shipping_cost(params: Dict[str, Any]) -> Dict[str, Any]:
    """Rough cost from billable weight, zip-region distance and service level."""
    dimensional_weight = 0.0
    dimensions = params.get("dimensions")
    if dimensions:
        dimensional_weight = (
            dimensions["length"] * dimensions["width"] * dimensions["height"] / DIMENSIONAL_DIVISOR
        )
    billable_weight = max(params["weight"], dimensional_weight)

    origin_region = int(str(params["origin_zip"])[0])
    destination_region = int(str(params["destination_zip"])[0])
    distance = abs(origin_region - destination_region) * 500

    service_level = params.get("service_level") or "standard"
    multiplier = SERVICE_MULTIPLIERS.get(service_level, 1.0)
    cost = (
        SHIPPING_BASE_RATE
        + billable_weight * SHIPPING_WEIGHT_RATE
        + distance * SHIPPING_DISTANCE_FACTOR
    ) * multiplier

    return {
        "estimated_cost": round(cost, 2),
        "billable_weight": billable_weight,
        "distance_miles": distance,
        "service_level": service_level,
    }


async def analyze_data(storage: StorageBackend, params: Dict[str, Any]) -> Dict[str, Any]:
    rows = await storage.select(params["data_source"])
    return analyze(rows, params["analysis_type"], params.get("time_period"))


async def generate_code(
    gateways: GatewayFactory, config: AiflowConfig, params: Dict[str, Any]
) -> Dict[str, Any]:
    settings = config.code_generation
    generator = CodeGenerator(gateways.get(settings.provider, settings.model), settings.model)
    result = await generator.generate_code(
        CodeGenerationRequest(
            language=params["language"],
            description=params["description"],
            context=params.get("context"),
        )
    )
    return result.model_dump()


async def search_embeddings(
    storage: StorageBackend,
    gateways: GatewayFactory,
    config: AiflowConfig,
    params: Dict[str, Any],
    context: ToolContext,
) -> Dict[str, Any]:
    """Similarity search over the calling user's own embeddings."""
    if not context.user_id:
        raise ValueError("search_embeddings requires a user")
    settings = config.embedding
    service = EmbeddingService(
        gateways.get(settings.provider, settings.model),
        storage,
        model=settings.model,
        batch_size=settings.batch_size,
    )
    matches = await service.search_similar_documents(
        params["query"],
        user_id=context.user_id,
        limit=params.get("limit") or DEFAULT_SEARCH_LIMIT,
        threshold=params.get("threshold") or DEFAULT_SIMILARITY_THRESHOLD,
    )
    return {"results": [match.model_dump() for match in matches]}


def default_tools(
    storage: StorageBackend,
    gateways: GatewayFactory,
    config: Optional[AiflowConfig] = None,
) -> List[Tool]:
    """The built-in tool set, bound to the given collaborators."""
    config = config or gateways.config
    return [
        Tool(
            name="query_database",
            description="Query the database for information",
            parameters={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "The table to query"},
                    "filters": {
                        "type": "array",
                        "description": "Row filters",
                        "items": {
                            "type": "object",
                            "properties": {
                                "field": {"type": "string"},
                                "operator": {
                                    "type": "string",
                                    "enum": ["eq", "neq", "gt", "lt", "gte", "lte", "like", "ilike", "in"],
                                },
                                "value": {},
                            },
                            "required": ["field", "value"],
                        },
                    },
                    "order_by": {"type": "string", "description": "Column to sort by"},
                    "descending": {"type": "boolean"},
                    "limit": {"type": "integer", "default": QUERY_ROW_LIMIT},
                },
                "required": ["table"],
            },
            execute=partial(query_database, storage),
        ),
        Tool(
            name="optimize_packaging",
            description="Optimize packaging for a shipment",
            parameters={
                "type": "object",
                "properties": {
                    "items": {
                        "type": "array",
                        "description": "The items to be packaged",
                        "items": {
                            "type": "object",
                            "properties": {
                                "id": {"type": "string"},
                                **_DIMENSIONS,
                                "weight": {"type": "number"},
                                "quantity": {"type": "integer"},
                            },
                        },
                    },
                    "available_packages": {
                        "type": "array",
                        "description": "The available package types",
                        "items": {
                            "type": "object",
                            "properties": {
                                "id": {"type": "string"},
                                **_DIMENSIONS,
                                "weight_capacity": {"type": "number"},
                            },
                        },
                    },
                },
                "required": ["items"],
            },
            execute=partial(optimize_packaging, storage),
        ),
        Tool(
            name="estimate_shipping_cost",
            description="Estimate the cost of shipping",
            parameters={
                "type": "object",
                "properties": {
                    "origin_zip": {"type": "string", "description": "The origin ZIP code"},
                    "destination_zip": {"type": "string", "description": "The destination ZIP code"},
                    "weight": {"type": "number", "description": "The weight of the package in pounds"},
                    "dimensions": {
                        "type": "object",
                        "description": "The dimensions of the package",
                        "properties": _DIMENSIONS,
                    },
                    "service_level": {
                        "type": "string",
                        "description": "The shipping service level",
                        "enum": ["standard", "expedited", "overnight"],
                    },
                },
                "required": ["origin_zip", "destination_zip", "weight"],
            },
            execute=estimate_shipping_cost,
        ),
        Tool(
            name="analyze_data",
            description="Analyze data and generate insights",
            parameters={
                "type": "object",
                "properties": {
                    "data_source": {"type": "string", "description": "The table to analyze"},
                    "analysis_type": {
                        "type": "string",
                        "description": "The type of analysis to perform",
                        "enum": ["summary", "trends", "anomalies", "forecast"],
                    },
                    "time_period": {
                        "type": "string",
                        "description": "The time period to analyze",
                        "enum": ["daily", "weekly", "monthly", "quarterly", "yearly"],
                    },
                },
                "required": ["data_source", "analysis_type"],
            },
            execute=partial(analyze_data, storage),
        ),
        Tool(
            name="generate_code",
            description="Generate code based on a description",
            parameters={
                "type": "object",
                "properties": {
                    "language": {
                        "type": "string",
                        "description": "The programming language",
                        "enum": ["javascript", "typescript", "python", "sql", "html", "css"],
                    },
                    "description": {"type": "string", "description": "Description of the code to generate"},
                    "context": {"type": "string", "description": "Additional context or requirements"},
                },
                "required": ["language", "description"],
            },
            execute=partial(generate_code, gateways, config),
        ),
        Tool(
            name="search_embeddings",
            description="Search for similar documents in the data embeddings",
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "The search query"},
                    "limit": {"type": "integer", "description": "Number of results to return", "default": 5},
                    "threshold": {"type": "number", "description": "Similarity threshold (0-1)", "default": 0.7},
                },
                "required": ["query"],
            },
            execute=partial(search_embeddings, storage, gateways, config),
            uses_context=True,
        ),
    ]


def default_registry(
    storage: StorageBackend,
    gateways: GatewayFactory,
    config: Optional[AiflowConfig] = None,
) -> ToolRegistry:
    return ToolRegistry(default_tools(storage, gateways, config))
