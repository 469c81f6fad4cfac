import asyncio
import json

import pytest

from aiflow.agent import AgentLoop
from aiflow.exceptions import DefinitionNotFoundError, GatewayError
from aiflow.gateways import GatewayFactory
from aiflow.tools import Tool, ToolRegistry, default_registry

from tests.fakes import ScriptedGateway, reply, seed_agent, tool_reply


async def _lookup(params):
    return {"status": "shipped", "order": params["order_id"]}


async def _explode(params):
    raise RuntimeError("warehouse offline")


TOOLS = ToolRegistry(
    [
        Tool(name="lookup_order", description="Look up an order", execute=_lookup),
        Tool(name="explode", description="Always fails", execute=_explode),
    ]
)


@pytest.mark.asyncio
async def test_answer_without_tools(storage, gateways, gateway, config):
    await seed_agent(storage)
    gateway.replies = [reply("Hello there")]
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "hi")

    assert result.final_response == "Hello there"
    assert result.iterations == 1
    assert result.tool_calls == []
    assert result.tokens.total == 15
    first = gateway.requests[0]
    assert first.messages[0].role == "system"
    assert first.messages[0].content == "You are a logistics assistant."
    assert first.messages[1].content == "hi"


@pytest.mark.asyncio
async def test_tool_call_then_answer(storage, gateways, gateway, config):
    await seed_agent(storage, tools=["lookup_order"])
    gateway.replies = [
        tool_reply("lookup_order", {"order_id": "A-17"}, call_id="call_a"),
        reply("Order A-17 has shipped"),
    ]
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "where is A-17?")

    assert result.final_response == "Order A-17 has shipped"
    assert result.iterations == 2
    assert [call.tool for call in result.tool_calls] == ["lookup_order"]
    assert result.tool_calls[0].result == {"status": "shipped", "order": "A-17"}
    assert [t.function.name for t in gateway.requests[0].tools] == ["lookup_order"]

    tool_message = gateway.requests[1].messages[-1]
    assert tool_message.role == "tool"
    assert tool_message.tool_call_id == "call_a"
    assert json.loads(tool_message.content)["status"] == "shipped"


@pytest.mark.asyncio
async def test_iteration_budget_forces_final_answer(storage, config):
    gateway = ScriptedGateway(
        default=lambda request: reply("Final summary")
        if request.tools is None
        else tool_reply("lookup_order", {"order_id": "A-1"})
    )
    gateways = GatewayFactory(config, backend="http")
    gateways.put("openai", "gpt-test", gateway)
    await seed_agent(storage, tools=["lookup_order"])
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "loop forever", max_iterations=3)

    assert result.iterations == 3
    assert result.final_response == "Final summary"
    assert len(result.tool_calls) == 3
    # three tool-enabled calls plus one final call without tools
    assert len(gateway.requests) == 4
    assert gateway.requests[-1].tools is None
    assert gateway.requests[-1].messages[-1].content.startswith("Please provide your final answer")


@pytest.mark.asyncio
async def test_failing_tool_is_reported_to_model(storage, gateways, gateway, config):
    await seed_agent(storage, tools=["explode"])
    gateway.replies = [tool_reply("explode", {}, call_id="call_x"), reply("Sorry, try later")]
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "do it")

    assert result.final_response == "Sorry, try later"
    assert result.tool_calls == []
    tool_message = gateway.requests[1].messages[-1]
    assert tool_message.tool_call_id == "call_x"
    assert json.loads(tool_message.content) == {"error": "Error executing tool: warehouse offline"}


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_to_model(storage, gateways, gateway, config):
    await seed_agent(storage)
    gateway.replies = [tool_reply("teleport", {}), reply("I cannot do that")]
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "beam me up")

    assert result.final_response == "I cannot do that"
    assert json.loads(gateway.requests[1].messages[-1].content) == {"error": "Tool not found: teleport"}


@pytest.mark.asyncio
async def test_unregistered_agent_tools_are_not_advertised(storage, gateways, gateway, config):
    await seed_agent(storage, tools=["lookup_order", "not_registered"])
    loop = AgentLoop(storage, gateways, TOOLS, config)
    await loop.execute_agent("agent-1", "hi")
    assert [t.function.name for t in gateway.requests[0].tools] == ["lookup_order"]


@pytest.mark.asyncio
async def test_missing_agent_raises(storage, gateways, config):
    loop = AgentLoop(storage, gateways, TOOLS, config)
    with pytest.raises(DefinitionNotFoundError, match="Agent not found with ID: ghost"):
        await loop.execute_agent("ghost", "hi")


@pytest.mark.asyncio
async def test_agent_without_model_raises(storage, gateways, config):
    await storage.insert("ai_agents", {"id": "orphan", "name": "Orphan", "model_id": "nope"})
    loop = AgentLoop(storage, gateways, TOOLS, config)
    with pytest.raises(DefinitionNotFoundError, match="AI model not found for agent: orphan"):
        await loop.execute_agent("orphan", "hi")


@pytest.mark.asyncio
async def test_model_errors_propagate(storage, gateways, gateway, config):
    async def failing(request):
        raise GatewayError("rate limited", status_code=429)

    gateway.create_chat_completion = failing
    await seed_agent(storage)
    loop = AgentLoop(storage, gateways, TOOLS, config)
    with pytest.raises(GatewayError, match="rate limited"):
        await loop.execute_agent("agent-1", "hi")


class SlowGateway(ScriptedGateway):
    async def create_chat_completion(self, request):
        await asyncio.sleep(0.05)
        return await super().create_chat_completion(request)


@pytest.mark.asyncio
async def test_time_budget_forces_final_answer(storage, config):
    gateway = SlowGateway(
        default=lambda request: reply("Out of time")
        if request.tools is None
        else tool_reply("lookup_order", {"order_id": "A-1"})
    )
    gateways = GatewayFactory(config, backend="http")
    gateways.put("openai", "gpt-test", gateway)
    await seed_agent(storage, tools=["lookup_order"])
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "keep going", max_iterations=10, timeout_ms=20)

    assert result.iterations == 1
    assert result.final_response == "Out of time"
    assert len(gateway.requests) == 2
    assert gateway.requests[-1].tools is None
    assert result.elapsed_ms >= 50


@pytest.mark.asyncio
async def test_zero_iterations_goes_straight_to_final_answer(storage, gateways, gateway, config):
    await seed_agent(storage, tools=["lookup_order"])
    gateway.replies = [reply("Nothing to look up")]
    loop = AgentLoop(storage, gateways, TOOLS, config)

    result = await loop.execute_agent("agent-1", "hi", max_iterations=0)

    assert result.iterations == 0
    assert result.final_response == "Nothing to look up"
    assert len(gateway.requests) == 1
    assert gateway.requests[0].tools is None


@pytest.mark.asyncio
async def test_context_tools_receive_caller_not_model_arguments(storage, gateways, gateway, config):
    seen = []

    async def whoami(params, context):
        seen.append(context)
        return {"user": context.user_id}

    tools = TOOLS.with_tools(
        Tool(name="whoami", description="Report the caller", execute=whoami, uses_context=True)
    )
    await seed_agent(storage, tools=["whoami"])
    gateway.replies = [tool_reply("whoami", {"user_id": "mallory"}), reply("ok")]
    loop = AgentLoop(storage, gateways, tools, config)

    result = await loop.execute_agent("agent-1", "who am I?", user_id="alice")

    assert result.tool_calls[0].result == {"user": "alice"}
    assert seen[0].agent_id == "agent-1"


@pytest.mark.asyncio
async def test_search_embeddings_tool_only_sees_callers_documents(storage, gateways, gateway, config):
    await storage.insert(
        "data_embeddings",
        [
            {"user_id": "bob", "vector_data": [11.0, 1.0, 0.0], "metadata": {"content": "bob payroll"}},
            {"user_id": "alice", "vector_data": [11.0, 1.0, 0.0], "metadata": {"content": "alice notes"}},
        ],
    )
    await seed_agent(storage, tools=["search_embeddings"])
    search = {"query": "bob payroll", "user_id": "bob"}
    gateway.replies = [tool_reply("search_embeddings", search), reply("found it")]
    loop = AgentLoop(storage, gateways, default_registry(storage, gateways, config), config)

    result = await loop.execute_agent("agent-1", "find payroll", user_id="alice")

    contents = [match["content"] for match in result.tool_calls[0].result["results"]]
    assert contents == ["alice notes"]


@pytest.mark.asyncio
async def test_search_embeddings_tool_requires_a_user(storage, gateways, gateway, config):
    await storage.insert(
        "data_embeddings",
        {"user_id": "bob", "vector_data": [11.0, 1.0, 0.0], "metadata": {"content": "bob payroll"}},
    )
    await seed_agent(storage, tools=["search_embeddings"])
    gateway.replies = [tool_reply("search_embeddings", {"query": "bob payroll"}), reply("nothing")]
    loop = AgentLoop(storage, gateways, default_registry(storage, gateways, config), config)

    result = await loop.execute_agent("agent-1", "find payroll")

    assert result.tool_calls == []
    assert json.loads(gateway.requests[1].messages[-1].content) == {
        "error": "Error executing tool: search_embeddings requires a user"
    }
