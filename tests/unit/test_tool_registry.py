import pytest

from aiflow.persistence import Filter
from aiflow.tools import Tool, ToolRegistry, default_registry, estimate_shipping_cost


async def _echo(params):
    return params


def _tool(name: str) -> Tool:
    return Tool(name=name, description=f"{name} tool", execute=_echo)


def test_registry_lookup_and_schemas():
    registry = ToolRegistry([_tool("a"), _tool("b")])
    assert "a" in registry
    assert registry.get("missing") is None
    assert registry.names() == ["a", "b"]
    schemas = registry.schemas(["b", "missing"])
    assert [s.function.name for s in schemas] == ["b"]
    assert schemas[0].type == "function"


def test_registry_rejects_duplicate_names():
    with pytest.raises(ValueError, match="Duplicate tool name"):
        ToolRegistry([_tool("a"), _tool("a")])


def test_with_tools_returns_new_registry():
    base = ToolRegistry([_tool("a")])
    extended = base.with_tools(_tool("b"))
    assert len(base) == 1
    assert len(extended) == 2
    with pytest.raises(ValueError):
        extended.with_tools(_tool("a"))


def test_default_registry_tool_names(storage, gateways, config):
    registry = default_registry(storage, gateways, config)
    assert set(registry.names()) == {
        "query_database",
        "optimize_packaging",
        "estimate_shipping_cost",
        "analyze_data",
        "generate_code",
        "search_embeddings",
    }


@pytest.mark.asyncio
async def test_estimate_shipping_cost():
    result = await estimate_shipping_cost(
        {"origin_zip": "10001", "destination_zip": "90210", "weight": 10, "service_level": "expedited"}
    )
    # distance 8 regions * 500, cost (10 + 5 + 40) * 1.5
    assert result["distance_miles"] == 4000
    assert result["estimated_cost"] == 82.5
    assert result["billable_weight"] == 10


@pytest.mark.asyncio
async def test_estimate_shipping_cost_uses_dimensional_weight():
    result = await estimate_shipping_cost(
        {
            "origin_zip": "10001",
            "destination_zip": "10002",
            "weight": 1,
            "dimensions": {"length": 20, "width": 20, "height": 20},
        }
    )
    assert result["billable_weight"] == pytest.approx(8000 / 166)
    assert result["service_level"] == "standard"


@pytest.mark.asyncio
async def test_query_database_tool(storage, gateways, config):
    await storage.insert("orders", [{"id": "o1", "total": 5}, {"id": "o2", "total": 50}])
    registry = default_registry(storage, gateways, config)
    result = await registry.get("query_database").execute(
        {"table": "orders", "filters": [{"field": "total", "operator": "gt", "value": 10}]}
    )
    assert [row["id"] for row in result["results"]] == ["o2"]


@pytest.mark.asyncio
async def test_optimize_packaging_tool_falls_back_to_reusable_packages(storage, gateways, config):
    await storage.insert(
        "reusable_packages",
        [
            {
                "package_id": "crate-1",
                "status": "available",
                "dimensions": {"length": 10, "width": 10, "height": 10},
                "weight_capacity": 20,
            },
            {
                "package_id": "crate-2",
                "status": "in_use",
                "dimensions": {"length": 50, "width": 50, "height": 50},
                "weight_capacity": 100,
            },
        ],
    )
    registry = default_registry(storage, gateways, config)
    result = await registry.get("optimize_packaging").execute(
        {"items": [{"id": "i1", "length": 4, "width": 4, "height": 4, "weight": 3}]}
    )
    assert result["packages"][0]["package_id"] == "crate-1"
    assert await storage.select("reusable_packages", [Filter.eq("status", "available")])
