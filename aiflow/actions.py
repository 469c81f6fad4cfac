"""Caller-facing entry points that never raise.

Every coroutine here returns ``{"success": True, "data": ...}`` or
``{"success": False, "error": "..."}``.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel

from .agent import AgentLoop
from .codegen import CodeGenerationRequest
from .config import AiflowConfig, load_config
from .gateways import GatewayFactory
from .persistence import StorageBackend, get_storage
from .tools import ToolRegistry, default_registry
from .workflow import StepHandlers, WorkflowInterpreter, WorkflowStore

logger = logging.getLogger(__name__)

ActionResult = Dict[str, Any]


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def action(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[ActionResult]]:
    """Wrap a coroutine so its outcome is reported as a success/error dict."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> ActionResult:
        try:
            data = await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            return {"success": False, "error": str(e)}
        if isinstance(data, dict) and "success" in data:
            return data
        return {"success": True, "data": _dump(data)}

    return wrapper


def _parse_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


class Actions:
    """Wires storage, gateways, tools and the engine together."""

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        gateways: Optional[GatewayFactory] = None,
        tools: Optional[ToolRegistry] = None,
        config: Optional[AiflowConfig] = None,
    ) -> None:
        self.config = config or (gateways.config if gateways else load_config())
        self.storage = storage or get_storage(self.config)
        self.gateways = gateways or GatewayFactory(self.config)
        self.tools = tools if tools is not None else default_registry(
            self.storage, self.gateways, self.config
        )
        self.agent_loop = AgentLoop(self.storage, self.gateways, self.tools, self.config)
        self.handlers = StepHandlers(
            self.storage, self.gateways, self.tools, self.config, agent_loop=self.agent_loop
        )
        self.interpreter = WorkflowInterpreter(
            self.storage, self.gateways, self.tools, self.config, handlers=self.handlers
        )
        self.workflows = WorkflowStore(self.storage)

    # ------------------------------------------------------------------
    # Execution

    async def execute_workflow(
        self, workflow_id: str, user_id: str, input: Optional[Dict[str, Any]] = None
    ) -> ActionResult:
        try:
            result = await self.interpreter.execute_workflow(workflow_id, user_id, input or {})
        except Exception as e:
            logger.error(f"Error in execute_workflow: {e}")
            return {"success": False, "error": str(e)}
        response: ActionResult = {
            "success": result.status == "completed",
            "data": result.model_dump(mode="json"),
        }
        if result.error:
            response["error"] = result.error
        return response

    @action
    async def execute_agent(
        self,
        agent_id: str,
        prompt: str,
        max_iterations: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> ActionResult:
        result = await self.agent_loop.execute_agent(
            agent_id,
            prompt,
            max_iterations=max_iterations,
            timeout_ms=timeout_ms,
            verbose=True,
            user_id=user_id,
        )
        return {
            "success": True,
            "response": result.final_response,
            "data": result.model_dump(mode="json"),
        }

    # ------------------------------------------------------------------
    # Workflow CRUD

    @action
    async def create_workflow(self, definition: Dict[str, Any], user_id: str):
        return await self.workflows.create_workflow(definition, user_id)

    @action
    async def update_workflow(self, workflow_id: str, user_id: str, updates: Dict[str, Any]):
        return await self.workflows.update_workflow(workflow_id, user_id, updates)

    @action
    async def delete_workflow(self, workflow_id: str, user_id: str):
        if not await self.workflows.delete_workflow(workflow_id, user_id):
            return {"success": False, "error": "Workflow not found or access denied"}
        return {"success": True}

    @action
    async def get_workflow(self, workflow_id: str, user_id: str):
        return await self.workflows.get_workflow(workflow_id, user_id)

    @action
    async def list_workflows(self, user_id: str):
        return await self.workflows.list_user_workflows(user_id)

    @action
    async def list_workflow_runs(self, workflow_id: str, user_id: Optional[str] = None):
        return await self.workflows.list_workflow_runs(workflow_id, user_id)

    @action
    async def get_workflow_run(self, run_id: str, user_id: Optional[str] = None):
        return await self.workflows.get_workflow_run(run_id, user_id)

    # ------------------------------------------------------------------
    # Direct collaborator access

    @action
    async def generate_code(
        self, language: str, description: str, framework: Optional[str] = None
    ):
        return await self.handlers.code_generator.generate_code(
            CodeGenerationRequest(language=language, description=description, framework=framework)
        )

    @action
    async def optimize_supply_chain(
        self,
        items: Any,
        packages: Any,
        origin: Any,
        destination: Any,
        carriers: Any = None,
    ):
        return self.handlers.optimizer.optimize_supply_chain(
            _parse_json(items),
            _parse_json(packages) or [],
            _parse_json(origin),
            _parse_json(destination),
            _parse_json(carriers) or [],
        )

    @action
    async def create_embeddings(
        self,
        documents: List[Dict[str, Any]],
        user_id: str,
        name: str,
        description: Optional[str] = None,
    ):
        return await self.handlers.embeddings.create_embeddings(
            documents, user_id, name, description
        )

    @action
    async def search_embeddings(
        self, query: str, user_id: str, limit: int = 5, threshold: float = 0.7
    ):
        return await self.handlers.embeddings.search_similar_documents(
            query, user_id, limit=limit, threshold=threshold
        )
