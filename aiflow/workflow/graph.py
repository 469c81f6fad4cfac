"""Structural validation of workflow step graphs."""

from __future__ import annotations

from collections import Counter, deque
from typing import Dict, List, Set

from ..contracts import WorkflowDefinition
from ..exceptions import MalformedWorkflowError

MAX_NEXT_STEPS = 2


def adjacency(workflow: WorkflowDefinition) -> Dict[str, List[str]]:
    return {step.id: list(step.next_steps) for step in workflow.steps}


def resolve_entry_step(workflow: WorkflowDefinition) -> str:
    """Explicit ``entry_step_id``, else the single step nothing points to."""
    step_ids = {step.id for step in workflow.steps}
    if workflow.entry_step_id is not None:
        if workflow.entry_step_id not in step_ids:
            raise MalformedWorkflowError(
                f"Entry step '{workflow.entry_step_id}' does not exist"
            )
        return workflow.entry_step_id

    referenced = {target for step in workflow.steps for target in step.next_steps}
    candidates = [step.id for step in workflow.steps if step.id not in referenced]
    if not candidates:
        raise MalformedWorkflowError("Workflow has no entry step")
    if len(candidates) > 1:
        raise MalformedWorkflowError(
            f"Workflow has multiple entry steps: {', '.join(candidates)}"
        )
    return candidates[0]


def _has_cycle(graph: Dict[str, List[str]]) -> bool:
    visited: Set[str] = set()
    rec_stack: Set[str] = set()

    def dfs(node_id: str) -> bool:
        visited.add(node_id)
        rec_stack.add(node_id)
        for neighbor in graph.get(node_id, []):
            if neighbor not in visited:
                if dfs(neighbor):
                    return True
            elif neighbor in rec_stack:
                return True
        rec_stack.remove(node_id)
        return False

    return any(dfs(node_id) for node_id in graph if node_id not in visited)


def _reachable(graph: Dict[str, List[str]], entry: str) -> Set[str]:
    seen = {entry}
    queue = deque([entry])
    while queue:
        for neighbor in graph[queue.popleft()]:
            if neighbor not in seen:
                seen.add(neighbor)
                queue.append(neighbor)
    return seen


def validate_workflow(workflow: WorkflowDefinition) -> str:
    """Validate the step graph and return the entry step id.

    Raises:
        MalformedWorkflowError: If the graph is not a single-entry,
            fully reachable, acyclic graph with unambiguous branching.
    """
    if not workflow.steps:
        raise MalformedWorkflowError("Workflow has no steps")

    duplicates = [sid for sid, n in Counter(s.id for s in workflow.steps).items() if n > 1]
    if duplicates:
        raise MalformedWorkflowError(f"Duplicate step ids: {', '.join(duplicates)}")

    graph = adjacency(workflow)
    for step in workflow.steps:
        missing = [target for target in step.next_steps if target not in graph]
        if missing:
            raise MalformedWorkflowError(
                f"Step '{step.id}' references unknown steps: {', '.join(missing)}"
            )
        if len(step.next_steps) > MAX_NEXT_STEPS:
            raise MalformedWorkflowError(
                f"Step '{step.id}' has {len(step.next_steps)} next steps, maximum is {MAX_NEXT_STEPS}"
            )
        if len(step.next_steps) > 1 and step.condition is None:
            raise MalformedWorkflowError(
                f"Step '{step.id}' has multiple next steps but no condition"
            )

    if _has_cycle(graph):
        raise MalformedWorkflowError("Workflow contains a cycle")

    entry = resolve_entry_step(workflow)
    unreachable = [sid for sid in graph if sid not in _reachable(graph, entry)]
    if unreachable:
        raise MalformedWorkflowError(
            f"Steps unreachable from entry '{entry}': {', '.join(unreachable)}"
        )
    return entry
