"""Immutable registry of tools an agent may call."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..gateways.base import FunctionSchema, ToolSchema

ToolFunc = Callable[..., Awaitable[Any]]


class ToolContext(BaseModel):
    """Who a tool call is made on behalf of; never taken from model arguments."""

    agent_id: str
    user_id: Optional[str] = None


class Tool(BaseModel):
    """A named, schema-described async function."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    execute: ToolFunc
    uses_context: bool = False

    def schema(self) -> ToolSchema:
        return ToolSchema(
            function=FunctionSchema(
                name=self.name,
                description=self.description,
                parameters=self.parameters,
            )
        )

    async def run(self, params: Dict[str, Any], context: ToolContext) -> Any:
        """Execute with ``context`` appended when the tool asks for it."""
        if self.uses_context:
            return await self.execute(params, context)
        return await self.execute(params)


class ToolRegistry:
    """Read-only mapping of tool name to :class:`Tool`.

    Built once from an iterable of tools; ``with_tools`` returns a new
    registry instead of mutating this one.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        registered: Dict[str, Tool] = {}
        for tool in tools:
            if tool.name in registered:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            registered[tool.name] = tool
        self._tools = registered

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self, names: Optional[Iterable[str]] = None) -> List[ToolSchema]:
        """Schemas for ``names`` (or every tool); unknown names are skipped."""
        selected = self._tools if names is None else [n for n in names if n in self._tools]
        return [self._tools[name].schema() for name in selected]

    def with_tools(self, *tools: Tool) -> "ToolRegistry":
        return ToolRegistry([*self._tools.values(), *tools])
