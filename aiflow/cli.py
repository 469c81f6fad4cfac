"""Command line interface for managing and running aiflow workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml

from aiflow.actions import Actions
from aiflow.agent import AgentDefinition, AgentStore
from aiflow.exceptions import MalformedWorkflowError
from aiflow.workflow import parse_workflow

app = typer.Typer(help="CLI for aiflow workflows and agents")

# Command groups
agent_app = typer.Typer(help="Commands for managing agents")
workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(agent_app, name="agent")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """aiflow CLI entry point."""
    pass


def _load_document(path: Path) -> Dict[str, Any]:
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    # JSON documents are valid YAML
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        typer.secho(f"{path} does not contain a mapping", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


def _parse_input(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON input: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(value, dict):
        typer.secho("Input must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return value


def _report(result: Dict[str, Any]) -> Any:
    """Return ``data`` of a successful action, exit with code 1 otherwise."""
    if not result["success"]:
        typer.secho(f"Error: {result.get('error')}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return result.get("data")


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Check a workflow definition file without storing it.

    Validates step configs against their step type and the step graph
    (entry step, dangling references, cycles).

    Example:
        aiflow workflow validate ./workflows/order_pipeline.yaml
    """
    data = _load_document(path)
    try:
        workflow = parse_workflow(data)
    except MalformedWorkflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow '{workflow.name}' is valid ({len(workflow.steps)} steps)")


@workflow_app.command("create")
def workflow_create(
    path: Path,
    user: str = typer.Option(..., "--user", help="Owner of the workflow"),
) -> None:
    """
    Store a workflow definition from a YAML or JSON file.

    Example:
        aiflow workflow create ./workflows/order_pipeline.yaml --user u1
        # Output: Created workflow 6f1c...: Order pipeline
    """
    data = _load_document(path)
    workflow = _report(asyncio.run(Actions().create_workflow(data, user)))
    typer.echo(f"Created workflow {workflow['id']}: {workflow['name']}")


@workflow_app.command("list")
def workflow_list(user: str = typer.Option(..., "--user")) -> None:
    """List the workflows owned by a user."""
    workflows = _report(asyncio.run(Actions().list_workflows(user)))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        state = "active" if wf["is_active"] else "inactive"
        typer.echo(f"{wf['id']}\t{wf['name']}\t{state}")


@workflow_app.command("delete")
def workflow_delete(workflow_id: str, user: str = typer.Option(..., "--user")) -> None:
    """Delete a workflow owned by a user."""
    _report(asyncio.run(Actions().delete_workflow(workflow_id, user)))
    typer.echo(f"Deleted workflow {workflow_id}")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    user: str = typer.Option(..., "--user"),
    input: Optional[str] = typer.Option(None, "--input", help="JSON object of run input"),
) -> None:
    """
    Execute a stored workflow and print every step result.

    Example:
        aiflow workflow run 6f1c... --user u1 --input '{"order_id": "A-17"}'
        # Output: Run 93ab...: completed (412 ms)
        #         - fetch_order: {...}
    """
    result = asyncio.run(Actions().execute_workflow(workflow_id, user, _parse_input(input)))
    if "data" not in result:
        _report(result)
    data = result["data"]
    typer.echo(f"Run {data['run_id']}: {data['status']} ({data['execution_time']} ms)")
    for step_id, value in data["results"].items():
        typer.echo(f"- {step_id}: {json.dumps(value, default=str)}")
    if not result["success"]:
        typer.secho(f"Error: {data['error']}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@workflow_app.command("runs")
def workflow_runs(workflow_id: str, user: Optional[str] = typer.Option(None, "--user")) -> None:
    """List runs of a workflow, newest first."""
    runs = _report(asyncio.run(Actions().list_workflow_runs(workflow_id, user)))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run['id']}\t{run['status']}")


@workflow_app.command("show-run")
def workflow_show_run(run_id: str, user: Optional[str] = typer.Option(None, "--user")) -> None:
    """Show status, timing and step results of a single run."""
    run = _report(asyncio.run(Actions().get_workflow_run(run_id, user)))
    typer.echo(f"Run {run['id']} of workflow {run['workflow_id']}: {run['status']}")
    if run.get("start_time") or run.get("end_time"):
        typer.echo(f"Started {run.get('start_time')} -> finished {run.get('end_time')}")
    if run.get("error"):
        typer.echo(f"Error: {run['error']}")
    for step_id, value in (run.get("results") or {}).items():
        typer.echo(f"- {step_id}: {json.dumps(value, default=str)}")


@agent_app.command("register")
def agent_register(path: Path) -> None:
    """
    Store an agent definition (with its embedded model record) from a file.

    Example:
        aiflow agent register ./agents/logistics.yaml
    """
    data = _load_document(path)
    actions = Actions()
    agent = AgentDefinition.model_validate(data)
    asyncio.run(AgentStore(actions.storage).save_agent(agent))
    typer.echo(f"Registered agent {agent.id}")


@agent_app.command("list")
def agent_list(user: Optional[str] = typer.Option(None, "--user")) -> None:
    """List stored agent definitions."""
    actions = Actions()
    agents = asyncio.run(AgentStore(actions.storage).list_agents(user))
    if not agents:
        typer.echo("No agents found")
        return
    for agent in agents:
        tools = ", ".join(t if isinstance(t, str) else t.name for t in agent.tools)
        typer.echo(f"{agent.id}\t{agent.name}\t[{tools}]")


@agent_app.command("run")
def agent_run(
    agent_id: str,
    prompt: str,
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms"),
    user: Optional[str] = typer.Option(None, "--user", help="User the agent's tools act for"),
) -> None:
    """
    Run the tool-calling loop of a stored agent against a prompt.

    Example:
        aiflow agent run logistics "Which carrier is cheapest for 5 kg to Lyon?"
    """
    result = _report(
        asyncio.run(
            Actions().execute_agent(
                agent_id,
                prompt,
                max_iterations=max_iterations,
                timeout_ms=timeout_ms,
                user_id=user,
            )
        )
    )
    typer.echo(result["final_response"])
    typer.echo(
        f"({result['iterations']} iterations, {len(result['tool_calls'])} tool calls, "
        f"{result['tokens']['total']} tokens)"
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
