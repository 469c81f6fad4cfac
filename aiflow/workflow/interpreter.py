"""Sequential step-graph interpreter."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ..config import AiflowConfig
from ..contracts import WorkflowDefinition, WorkflowExecutionResult, WorkflowRunContext
from ..exceptions import (
    CycleDetectedError,
    DefinitionNotFoundError,
    MalformedWorkflowError,
    StepExecutionError,
)
from ..gateways import GatewayFactory
from ..persistence import StorageBackend
from ..tools.registry import ToolRegistry
from .branching import next_step_id
from .graph import resolve_entry_step
from .handlers import StepHandlers
from .store import WorkflowStore

logger = logging.getLogger(__name__)


class WorkflowInterpreter:
    """Run a stored workflow for a user and persist the run outcome."""

    def __init__(
        self,
        storage: StorageBackend,
        gateways: GatewayFactory,
        tools: ToolRegistry,
        config: Optional[AiflowConfig] = None,
        handlers: Optional[StepHandlers] = None,
    ) -> None:
        self.workflows = WorkflowStore(storage)
        self.handlers = handlers or StepHandlers(storage, gateways, tools, config)

    async def execute_workflow(
        self,
        workflow_id: str,
        user_id: str,
        input: Optional[Dict[str, Any]] = None,
    ) -> WorkflowExecutionResult:
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            workflow = await self.workflows.get_workflow(workflow_id, user_id)
        except (DefinitionNotFoundError, MalformedWorkflowError) as e:
            logger.error(f"Cannot execute workflow {workflow_id}: {e}")
            return WorkflowExecutionResult(
                workflow_id=workflow_id,
                run_id="unknown",
                status="failed",
                error=str(e),
                execution_time=elapsed_ms(),
            )

        run = await self.workflows.create_run(workflow_id, user_id)
        context = WorkflowRunContext(
            workflow_id=workflow_id,
            run_id=run.id,
            user_id=user_id,
            input=input or {},
        )

        try:
            context.current_step = resolve_entry_step(workflow)
            await self.workflows.mark_running(run.id)
            logger.info(f"Workflow {workflow_id} run {run.id} started")
            await self._walk(workflow, context)
        except Exception as e:
            context.error = str(e)
            logger.error(f"Workflow {workflow_id} run {run.id} failed: {e}")
            await self.workflows.mark_failed(run.id, context.error, context.results)
            return WorkflowExecutionResult(
                workflow_id=workflow_id,
                run_id=run.id,
                status="failed",
                results=context.results,
                error=context.error,
                execution_time=elapsed_ms(),
            )

        await self.workflows.mark_completed(run.id, context.results)
        logger.info(f"Workflow {workflow_id} run {run.id} completed")
        return WorkflowExecutionResult(
            workflow_id=workflow_id,
            run_id=run.id,
            status="completed",
            results=context.results,
            execution_time=elapsed_ms(),
        )

    async def _walk(self, workflow: WorkflowDefinition, context: WorkflowRunContext) -> None:
        steps = workflow.step_map()
        visited: set[str] = set()
        current: Optional[str] = context.current_step

        while current is not None:
            if current in visited:
                raise CycleDetectedError(current)
            visited.add(current)
            context.current_step = current
            step = steps[current]

            try:
                result = await self.handlers.handle(step, context)
            except Exception as e:
                raise StepExecutionError(step.id, str(e)) from e

            context.results[step.id] = result
            context.completed_steps.append(step.id)
            current = next_step_id(step.next_steps, step.condition, result)
