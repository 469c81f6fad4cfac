"""Bounded tool-calling loop around a model gateway."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

from ..config import AiflowConfig
from ..constants import DEFAULT_SYSTEM_PROMPT, FINAL_ANSWER_PROMPT
from ..contracts import AgentExecutionResult, ToolCallRecord
from ..exceptions import ToolExecutionError, ToolNotFoundError
from ..gateways import GatewayFactory
from ..gateways.base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ModelGateway,
    ToolCall,
)
from ..persistence import StorageBackend
from ..tools.registry import ToolContext, ToolRegistry
from .definitions import AgentDefinition, AgentStore

logger = logging.getLogger(__name__)


def _tool_message(call: ToolCall, payload: Any) -> ChatMessage:
    return ChatMessage(
        role="tool",
        name=call.function.name,
        tool_call_id=call.id,
        content=json.dumps(payload, default=str),
    )


class AgentLoop:
    """Call the model, run requested tools, feed results back, repeat.

    The loop stops when the model answers without tool calls or when the
    iteration or wall-clock budget runs out. The budget is checked before
    each iteration; an exhausted budget triggers one final call without
    tools. Tool failures are returned to the model as error payloads; model
    call failures propagate.
    """

    def __init__(
        self,
        storage: StorageBackend,
        gateways: GatewayFactory,
        tools: ToolRegistry,
        config: Optional[AiflowConfig] = None,
    ) -> None:
        self.agents = AgentStore(storage)
        self.gateways = gateways
        self.tools = tools
        self.config = config or gateways.config

    async def execute_agent(
        self,
        agent_id: str,
        user_query: str,
        max_iterations: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        verbose: bool = False,
        user_id: Optional[str] = None,
    ) -> AgentExecutionResult:
        """Run ``agent_id`` on ``user_query``.

        ``user_id`` is the caller the tools act for; tools that read user data
        are scoped to it.
        """
        started = time.monotonic()
        if max_iterations is None:
            max_iterations = self.config.agent.max_iterations
        if timeout_ms is None:
            timeout_ms = self.config.agent.timeout_ms
        tool_context = ToolContext(agent_id=agent_id, user_id=user_id)

        agent = await self.agents.get_agent(agent_id)
        gateway = self.gateways.get(agent.model.provider, agent.model.model_id)
        tool_schemas = agent.tool_schemas(self.tools) or None

        messages: List[ChatMessage] = [
            ChatMessage(role="system", content=agent.system_prompt or DEFAULT_SYSTEM_PROMPT),
            ChatMessage(role="user", content=user_query),
        ]
        result = AgentExecutionResult(agent_id=agent_id)
        done = False

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        while not done and result.iterations < max_iterations and elapsed_ms() < timeout_ms:
            result.iterations += 1
            log = logger.info if verbose else logger.debug
            log(f"Agent {agent_id} iteration {result.iterations} ({len(messages)} messages)")

            response = await self._complete(gateway, agent, messages, tool_schemas, result)
            reply = response.choices[0].message
            messages.append(
                ChatMessage(role="assistant", content=reply.content or "", tool_calls=reply.tool_calls)
            )

            if not reply.tool_calls:
                done = True
                result.final_response = reply.content or ""
                break

            for call in reply.tool_calls:
                log(f"Tool call: {call.function.name}({call.function.arguments})")
                messages.append(await self._run_tool(call, result, tool_context))

        if not done:
            logger.info(
                f"Agent {agent_id} budget exhausted after {result.iterations} iterations; "
                "requesting final answer"
            )
            messages.append(ChatMessage(role="user", content=FINAL_ANSWER_PROMPT))
            response = await self._complete(gateway, agent, messages, None, result)
            result.final_response = response.choices[0].message.content or ""

        result.elapsed_ms = elapsed_ms()
        return result

    async def _complete(
        self,
        gateway: ModelGateway,
        agent: AgentDefinition,
        messages: List[ChatMessage],
        tool_schemas,
        result: AgentExecutionResult,
    ) -> ChatCompletionResponse:
        response = await gateway.create_chat_completion(
            ChatCompletionRequest(
                model=agent.model.model_id,
                messages=list(messages),
                temperature=agent.parameters.temperature,
                max_tokens=agent.parameters.max_tokens,
                tools=tool_schemas,
            )
        )
        usage = response.usage
        result.tokens.add(usage.prompt_tokens, usage.completion_tokens, usage.total_tokens)
        return response

    async def _run_tool(
        self, call: ToolCall, result: AgentExecutionResult, context: ToolContext
    ) -> ChatMessage:
        name = call.function.name
        tool = self.tools.get(name)
        if tool is None:
            error = ToolNotFoundError(name)
            logger.warning(str(error))
            return _tool_message(call, {"error": str(error)})

        try:
            params: Dict[str, Any] = json.loads(call.function.arguments or "{}")
            if not isinstance(params, dict):
                raise ValueError("tool arguments must be a JSON object")
            output = await tool.run(params, context)
        except Exception as exc:
            error = ToolExecutionError(name, str(exc))
            logger.warning(f"Error executing tool {name}: {exc}")
            return _tool_message(call, {"error": str(error)})

        result.tool_calls.append(ToolCallRecord(tool=name, params=params, result=output))
        return _tool_message(call, output)
