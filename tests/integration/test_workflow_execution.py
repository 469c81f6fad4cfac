import pytest

from aiflow.contracts import WorkflowDefinition, WorkflowRunContext
from aiflow.exceptions import CycleDetectedError
from aiflow.persistence import SQLiteStorage
from aiflow.tools import default_registry
from aiflow.workflow import WorkflowInterpreter, WorkflowStore

from tests.fakes import reply, seed_agent, tool_reply

SALES = [
    {"date": "2024-01-05", "amount": 100, "region": "north"},
    {"date": "2024-02-03", "amount": 150, "region": "south"},
    {"date": "2024-03-11", "amount": 210, "region": "north"},
]


def _custom(step_id, parameters, function_name="transform_data", **extra):
    return {
        "id": step_id,
        "name": step_id.replace("_", " ").title(),
        "type": "custom",
        "config": {"function_name": function_name, "parameters": parameters},
        **extra,
    }


@pytest.fixture
def interpreter(storage, gateways, config):
    return WorkflowInterpreter(storage, gateways, default_registry(storage, gateways, config), config)


async def _store(storage, definition, user_id="u1"):
    return await WorkflowStore(storage).create_workflow(definition, user_id=user_id)


@pytest.mark.asyncio
async def test_linear_workflow_is_deterministic(storage, interpreter):
    await storage.insert("sales", SALES)
    workflow = await _store(
        storage,
        {
            "name": "Sales report",
            "steps": [
                _custom(
                    "load",
                    {"source": "storage", "query": {"table": "sales"}},
                    function_name="fetch_data",
                    next_steps=["north_only"],
                ),
                _custom(
                    "north_only",
                    {
                        "data": "${load}",
                        "transformations": [
                            {"type": "filter", "config": {"field": "region", "operator": "==", "value": "${input.region}"}}
                        ],
                    },
                    next_steps=["stats"],
                ),
                {
                    "id": "stats",
                    "name": "Stats",
                    "type": "data_analysis",
                    "config": {"data_source": "context.results.north_only", "analysis_type": "summary"},
                },
            ],
        },
    )

    first = await interpreter.execute_workflow(workflow.id, "u1", {"region": "north"})
    second = await interpreter.execute_workflow(workflow.id, "u1", {"region": "north"})

    assert first.status == "completed"
    assert list(first.results) == ["load", "north_only", "stats"]
    assert first.results == second.results
    assert first.run_id != second.run_id
    assert first.results["stats"]["count"] == 2
    assert first.results["stats"]["fields"]["amount"]["sum"] == 310

    run = await WorkflowStore(storage).get_workflow_run(first.run_id)
    assert run.status == "completed"
    assert run.results == first.results
    assert run.start_time is not None and run.end_time is not None


def _branching_workflow():
    return {
        "name": "Branching",
        "steps": [
            _custom(
                "check",
                {"data": {"valid": "${input.valid}"}},
                next_steps=["accept", "reject"],
                condition={"field": "valid", "operator": "==", "value": True},
            ),
            _custom("accept", {"data": {"outcome": "accepted"}}),
            _custom("reject", {"data": {"outcome": "rejected"}}),
        ],
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("valid, taken, skipped", [(True, "accept", "reject"), (False, "reject", "accept")])
async def test_condition_selects_branch(storage, interpreter, valid, taken, skipped):
    workflow = await _store(storage, _branching_workflow())
    result = await interpreter.execute_workflow(workflow.id, "u1", {"valid": valid})
    assert result.status == "completed"
    assert taken in result.results
    assert skipped not in result.results


@pytest.mark.asyncio
async def test_failing_step_marks_run_failed(storage, interpreter):
    workflow = await _store(
        storage,
        {
            "name": "Breaks in the middle",
            "steps": [
                _custom("first", {"data": [{"n": 1}]}, next_steps=["second"]),
                _custom("second", {"source": "ftp"}, function_name="fetch_data", next_steps=["third"]),
                _custom("third", {"data": []}),
            ],
        },
    )

    result = await interpreter.execute_workflow(workflow.id, "u1")

    assert result.status == "failed"
    assert result.error == "Unsupported data source: ftp"
    assert list(result.results) == ["first"]
    run = await WorkflowStore(storage).get_workflow_run(result.run_id)
    assert run.status == "failed"
    assert run.error == result.error
    assert run.results == {"first": [{"n": 1}]}


@pytest.mark.asyncio
async def test_analysis_of_non_list_source_fails_the_run(storage, interpreter):
    workflow = await _store(
        storage,
        {
            "name": "Analyse a record",
            "steps": [
                _custom("totals", {"data": {"total": 3}}, next_steps=["stats"]),
                {
                    "id": "stats",
                    "name": "Stats",
                    "type": "data_analysis",
                    "config": {"data_source": "context.results.totals", "analysis_type": "summary"},
                },
            ],
        },
    )

    result = await interpreter.execute_workflow(workflow.id, "u1")

    assert result.status == "failed"
    assert result.error == "Data source context.results.totals is not a list of rows"
    assert "stats" not in result.results


@pytest.mark.asyncio
async def test_unknown_workflow_returns_failed_result(interpreter, storage):
    await _store(storage, _branching_workflow(), user_id="owner")
    result = await interpreter.execute_workflow("does-not-exist", "u1")
    assert result.status == "failed"
    assert result.run_id == "unknown"
    assert "Workflow not found" in result.error


@pytest.mark.asyncio
async def test_other_users_workflow_is_not_found(storage, interpreter):
    workflow = await _store(storage, _branching_workflow(), user_id="owner")
    result = await interpreter.execute_workflow(workflow.id, "intruder", {"valid": True})
    assert result.status == "failed"
    assert await storage.select("ai_workflow_runs") == []


@pytest.mark.asyncio
async def test_revisited_step_raises_cycle_error(storage, interpreter):
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "loop",
            "steps": [
                _custom("a", {"data": []}, next_steps=["b"]),
                _custom("b", {"data": []}, next_steps=["a"]),
            ],
            "entry_step_id": "a",
        }
    )
    context = WorkflowRunContext(workflow_id=workflow.id, run_id="r", user_id="u1", current_step="a")
    with pytest.raises(CycleDetectedError, match="'a'"):
        await interpreter._walk(workflow, context)
    assert context.completed_steps == ["a", "b"]


@pytest.mark.asyncio
async def test_agent_step_uses_substituted_query(storage, interpreter, gateway):
    await seed_agent(storage, tools=["estimate_shipping_cost"])
    gateway.replies = [
        tool_reply("estimate_shipping_cost", {"origin_zip": "10001", "destination_zip": "90210", "weight": 10}),
        reply("Shipping costs about 55 dollars"),
    ]
    workflow = await _store(
        storage,
        {
            "name": "Quote",
            "steps": [
                {
                    "id": "quote",
                    "name": "Quote",
                    "type": "agent",
                    "config": {"agent_id": "agent-1", "query": "Quote ${input.weight} lbs to ${input.zip}"},
                    "next_steps": ["flag"],
                },
                _custom("flag", {"data": {"answer": "${quote.final_response}"}}),
            ],
        },
    )

    result = await interpreter.execute_workflow(workflow.id, "u1", {"weight": 10, "zip": "90210"})

    assert result.status == "completed"
    assert gateway.requests[0].messages[1].content == "Quote 10 lbs to 90210"
    quote = result.results["quote"]
    assert quote["final_response"] == "Shipping costs about 55 dollars"
    assert quote["tool_calls"][0]["result"]["estimated_cost"] == 55.0
    assert result.results["flag"] == {"answer": "Shipping costs about 55 dollars"}


@pytest.mark.asyncio
async def test_supply_chain_step(storage, interpreter):
    workflow = await _store(
        storage,
        {
            "name": "Ship",
            "steps": [
                {
                    "id": "ship",
                    "name": "Ship",
                    "type": "supply_chain",
                    "config": {
                        "operation": "optimize_packaging",
                        "items": "${input.items}",
                        "available_packages": [
                            {"id": "box", "length": 10, "width": 10, "height": 10, "weight_capacity": 5}
                        ],
                    },
                }
            ],
        },
    )
    items = [{"id": "i1", "length": 5, "width": 5, "height": 5, "weight": 1}]
    result = await interpreter.execute_workflow(workflow.id, "u1", {"items": items})
    assert result.status == "completed"
    assert result.results["ship"]["unassigned_items"] == []
    assert result.results["ship"]["packages"][0]["package_id"] == "box"


@pytest.mark.asyncio
async def test_code_generation_and_embedding_steps(storage, interpreter, gateway):
    gateway.replies = [reply("```python\nprint('hi')\n```\nPrints hi.")]
    workflow = await _store(
        storage,
        {
            "name": "Docs",
            "steps": [
                {
                    "id": "code",
                    "name": "Code",
                    "type": "code_generation",
                    "config": {"operation": "generate", "language": "python", "description": "greet ${input.who}"},
                    "next_steps": ["index"],
                },
                {
                    "id": "index",
                    "name": "Index",
                    "type": "embedding",
                    "config": {
                        "operation": "create",
                        "name": "snippets",
                        "documents": [{"id": "d1", "content": "${code.code}"}],
                    },
                    "next_steps": ["search"],
                },
                {
                    "id": "search",
                    "name": "Search",
                    "type": "embedding",
                    "config": {"operation": "search", "query": "${code.code}", "threshold": 0.99},
                },
            ],
        },
    )

    result = await interpreter.execute_workflow(workflow.id, "u1", {"who": "the team"})

    assert result.status == "completed", result.error
    assert "greet the team" in gateway.requests[0].messages[1].content
    assert result.results["code"]["code"] == "print('hi')\n"
    assert len(result.results["index"]) == 1
    assert result.results["search"][0]["content"] == "print('hi')\n"


@pytest.mark.asyncio
async def test_run_survives_sqlite_roundtrip(tmp_path, gateways, config):
    storage = SQLiteStorage(tmp_path / "runs.db")
    interpreter = WorkflowInterpreter(storage, gateways, default_registry(storage, gateways, config), config)
    workflow = await _store(storage, _branching_workflow())

    result = await interpreter.execute_workflow(workflow.id, "u1", {"valid": True})

    assert result.status == "completed"
    reopened = WorkflowStore(SQLiteStorage(tmp_path / "runs.db"))
    run = await reopened.get_workflow_run(result.run_id, "u1")
    assert run.status == "completed"
    assert run.results == {"check": {"valid": True}, "accept": {"outcome": "accepted"}}
    assert (await reopened.get_workflow(workflow.id, "u1")).steps[0].condition.value is True


@pytest.mark.asyncio
async def test_agent_step_tools_act_for_workflow_owner(storage, interpreter, gateway):
    await storage.insert(
        "data_embeddings",
        [
            {"user_id": "bob", "vector_data": [11.0, 1.0, 0.0], "metadata": {"content": "bob payroll"}},
            {"user_id": "u1", "vector_data": [11.0, 1.0, 0.0], "metadata": {"content": "u1 invoices"}},
        ],
    )
    await seed_agent(storage, tools=["search_embeddings"])
    gateway.replies = [
        tool_reply("search_embeddings", {"query": "bob payroll", "user_id": "bob"}),
        reply("Here is what I found"),
    ]
    workflow = await _store(
        storage,
        {
            "name": "Lookup",
            "steps": [
                {
                    "id": "ask",
                    "name": "Ask",
                    "type": "agent",
                    "config": {"agent_id": "agent-1", "query": "find payroll"},
                }
            ],
        },
    )

    result = await interpreter.execute_workflow(workflow.id, "u1")

    assert result.status == "completed", result.error
    found = result.results["ask"]["tool_calls"][0]["result"]["results"]
    assert [match["content"] for match in found] == ["u1 invoices"]
