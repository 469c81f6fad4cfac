"""Persistence of workflow definitions and run records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..constants import WORKFLOW_RUNS_TABLE, WORKFLOWS_TABLE
from ..contracts import WorkflowDefinition, WorkflowRun
from ..exceptions import DefinitionNotFoundError, MalformedWorkflowError
from ..persistence import Filter, StorageBackend
from .graph import validate_workflow

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_workflow(data: Dict[str, Any]) -> WorkflowDefinition:
    """Validate a raw definition (step configs and graph shape)."""
    try:
        workflow = WorkflowDefinition.model_validate(data)
    except ValidationError as exc:
        raise MalformedWorkflowError(f"Invalid workflow definition: {exc}") from exc
    validate_workflow(workflow)
    return workflow


def _scope(workflow_id: str, user_id: Optional[str]) -> List[Filter]:
    filters = [Filter.eq("id", workflow_id)]
    if user_id is not None:
        filters.append(Filter.eq("user_id", user_id))
    return filters


class WorkflowStore:
    """CRUD for workflows (``ai_workflows``) and runs (``ai_workflow_runs``)."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    # ------------------------------------------------------------------
    # Workflows

    async def create_workflow(
        self, definition: WorkflowDefinition | Dict[str, Any], user_id: Optional[str] = None
    ) -> WorkflowDefinition:
        data = definition.model_dump() if isinstance(definition, WorkflowDefinition) else dict(definition)
        if user_id is not None:
            data["user_id"] = user_id
        workflow = parse_workflow(data)
        now = _now()
        await self.storage.insert(
            WORKFLOWS_TABLE,
            {**workflow.model_dump(mode="json"), "created_at": now, "updated_at": now},
        )
        logger.info(f"Created workflow {workflow.id} ({workflow.name})")
        return workflow

    async def get_workflow(
        self, workflow_id: str, user_id: Optional[str] = None
    ) -> WorkflowDefinition:
        rows = await self.storage.select(WORKFLOWS_TABLE, _scope(workflow_id, user_id), limit=1)
        if not rows:
            raise DefinitionNotFoundError("workflow", workflow_id)
        return parse_workflow(rows[0])

    async def update_workflow(
        self, workflow_id: str, user_id: Optional[str], updates: Dict[str, Any]
    ) -> WorkflowDefinition:
        current = await self.get_workflow(workflow_id, user_id)
        merged = {**current.model_dump(), **updates, "id": workflow_id}
        workflow = parse_workflow(merged)
        await self.storage.update(
            WORKFLOWS_TABLE,
            {**workflow.model_dump(mode="json"), "updated_at": _now()},
            _scope(workflow_id, user_id),
        )
        logger.info(f"Updated workflow {workflow_id}")
        return workflow

    async def delete_workflow(self, workflow_id: str, user_id: Optional[str] = None) -> bool:
        deleted = await self.storage.delete(WORKFLOWS_TABLE, _scope(workflow_id, user_id))
        return bool(deleted)

    async def list_user_workflows(self, user_id: str) -> List[WorkflowDefinition]:
        rows = await self.storage.select(
            WORKFLOWS_TABLE,
            [Filter.eq("user_id", user_id)],
            order_by="created_at",
            descending=True,
        )
        return [WorkflowDefinition.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Runs

    async def create_run(self, workflow_id: str, user_id: str) -> WorkflowRun:
        rows = await self.storage.insert(
            WORKFLOW_RUNS_TABLE,
            {"workflow_id": workflow_id, "user_id": user_id, "status": "pending"},
        )
        return WorkflowRun.model_validate(rows[0])

    async def update_run(self, run_id: str, **values: Any) -> None:
        await self.storage.update(WORKFLOW_RUNS_TABLE, values, [Filter.eq("id", run_id)])

    async def mark_running(self, run_id: str) -> None:
        await self.update_run(run_id, status="running", start_time=_now())

    async def mark_completed(self, run_id: str, results: Dict[str, Any]) -> None:
        await self.update_run(run_id, status="completed", end_time=_now(), results=results)

    async def mark_failed(self, run_id: str, error: str, results: Dict[str, Any]) -> None:
        await self.update_run(
            run_id, status="failed", end_time=_now(), error=error, results=results
        )

    async def get_workflow_run(self, run_id: str, user_id: Optional[str] = None) -> WorkflowRun:
        rows = await self.storage.select(WORKFLOW_RUNS_TABLE, _scope(run_id, user_id), limit=1)
        if not rows:
            raise DefinitionNotFoundError("workflow run", run_id)
        return WorkflowRun.model_validate(rows[0])

    async def list_workflow_runs(
        self, workflow_id: str, user_id: Optional[str] = None
    ) -> List[WorkflowRun]:
        filters = [Filter.eq("workflow_id", workflow_id)]
        if user_id is not None:
            filters.append(Filter.eq("user_id", user_id))
        rows = await self.storage.select(
            WORKFLOW_RUNS_TABLE, filters, order_by="created_at", descending=True
        )
        return [WorkflowRun.model_validate(row) for row in rows]

    async def delete_workflow_run(self, run_id: str, user_id: Optional[str] = None) -> bool:
        deleted = await self.storage.delete(WORKFLOW_RUNS_TABLE, _scope(run_id, user_id))
        return bool(deleted)
