"""Agent and model records and their storage access."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..constants import AGENTS_TABLE, DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, MODELS_TABLE
from ..exceptions import DefinitionNotFoundError
from ..gateways.base import FunctionSchema, ToolSchema
from ..persistence import Filter, StorageBackend
from ..tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class AIModel(BaseModel):
    """A provider model an agent talks to."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    id: str
    provider: str
    model_id: str
    name: Optional[str] = None


class AgentParameters(BaseModel):
    model_config = ConfigDict(extra="allow")

    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS


class AgentDefinition(BaseModel):
    """Configured system prompt, model and tool list.

    ``tools`` entries are either names of registered tools or full
    function schemas.
    """

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    id: str
    name: str = ""
    description: Optional[str] = None
    system_prompt: Optional[str] = None
    tools: List[Union[str, FunctionSchema]] = Field(default_factory=list)
    parameters: AgentParameters = Field(default_factory=AgentParameters)
    model_id: Optional[str] = None
    user_id: Optional[str] = None
    model: Optional[AIModel] = None

    def tool_schemas(self, registry: ToolRegistry) -> List[ToolSchema]:
        """Schemas advertised to the model; names not in ``registry`` are dropped."""
        schemas: List[ToolSchema] = []
        for tool in self.tools:
            if isinstance(tool, str):
                registered = registry.get(tool)
                if registered is None:
                    logger.warning(f"Agent {self.id} lists unregistered tool '{tool}'")
                    continue
                schemas.append(registered.schema())
            else:
                schemas.append(ToolSchema(function=tool))
        return schemas


class AgentStore:
    """Load and save agent definitions and their model records."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    async def get_agent(self, agent_id: str) -> AgentDefinition:
        rows = await self.storage.select(AGENTS_TABLE, [Filter.eq("id", agent_id)], limit=1)
        if not rows:
            raise DefinitionNotFoundError("agent", agent_id)
        row = rows[0]

        model_row: Optional[Dict[str, Any]] = row.pop("ai_models", None)
        if model_row is None and row.get("model_id"):
            models = await self.storage.select(
                MODELS_TABLE, [Filter.eq("id", row["model_id"])], limit=1
            )
            model_row = models[0] if models else None
        if model_row is None:
            raise DefinitionNotFoundError(
                "model", agent_id, f"AI model not found for agent: {agent_id}"
            )

        return AgentDefinition.model_validate({**row, "model": model_row})

    async def list_agents(self, user_id: Optional[str] = None) -> List[AgentDefinition]:
        filters = [Filter.eq("user_id", user_id)] if user_id else None
        rows = await self.storage.select(AGENTS_TABLE, filters, order_by="created_at")
        return [AgentDefinition.model_validate(row) for row in rows]

    async def save_model(self, model: AIModel) -> AIModel:
        await self.storage.upsert(MODELS_TABLE, model.model_dump())
        return model

    async def save_agent(self, agent: AgentDefinition) -> AgentDefinition:
        row = agent.model_dump(exclude={"model"}, exclude_none=True)
        if agent.model is not None:
            await self.save_model(agent.model)
            row["model_id"] = agent.model.id
        await self.storage.upsert(AGENTS_TABLE, row)
        logger.info(f"Saved agent {agent.id}")
        return agent
