"""Model gateway backed by pydantic-ai's direct model request API."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic_ai.direct import model_request
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.tools import ToolDefinition

from ..exceptions import UnsupportedOperationError
from .base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    EmbeddingRequest,
    EmbeddingResponse,
    ModelGateway,
)

logger = logging.getLogger(__name__)

# aiflow provider name -> pydantic-ai model prefix
MODEL_PREFIXES = {
    "openai": "openai",
    "anthropic": "anthropic",
    "mistral": "mistral",
    "google": "google-gla",
}


def to_model_messages(messages: List[ChatMessage]) -> List[ModelMessage]:
    """Convert a flat chat history into pydantic-ai request/response messages."""
    converted: List[ModelMessage] = []
    pending: List[ModelRequestPart] = []

    for message in messages:
        if message.role == "assistant":
            if pending:
                converted.append(ModelRequest(parts=pending))
                pending = []
            parts: list = []
            if message.content:
                parts.append(TextPart(content=message.content))
            for call in message.tool_calls or []:
                parts.append(
                    ToolCallPart(
                        tool_name=call.function.name,
                        args=call.function.arguments,
                        tool_call_id=call.id,
                    )
                )
            converted.append(ModelResponse(parts=parts))
        elif message.role == "system":
            pending.append(SystemPromptPart(content=message.content or ""))
        elif message.role == "tool":
            pending.append(
                ToolReturnPart(
                    tool_name=message.name or "",
                    content=message.content or "",
                    tool_call_id=message.tool_call_id or "",
                )
            )
        else:
            pending.append(UserPromptPart(content=message.content or ""))

    if pending:
        converted.append(ModelRequest(parts=pending))
    return converted


class PydanticAIGateway(ModelGateway):
    """Chat completions through ``pydantic_ai.direct.model_request``.

    Credentials are read by pydantic-ai from the provider's usual
    environment variables. Embeddings are delegated to ``embedder``.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        embedder: Optional[ModelGateway] = None,
    ) -> None:
        prefix = MODEL_PREFIXES.get(provider)
        if prefix is None:
            raise UnsupportedOperationError(
                f"Provider '{provider}' is not available through pydantic-ai"
            )
        self.provider = provider
        self.model_name = f"{prefix}:{model}"
        self._embedder = embedder

    async def aclose(self) -> None:
        if self._embedder is not None:
            await self._embedder.aclose()

    async def create_chat_completion(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionResponse:
        settings = {}
        if request.temperature is not None:
            settings["temperature"] = request.temperature
        if request.max_tokens is not None:
            settings["max_tokens"] = request.max_tokens

        parameters = ModelRequestParameters(
            function_tools=[
                ToolDefinition(
                    name=tool.function.name,
                    description=tool.function.description,
                    parameters_json_schema=tool.function.parameters,
                )
                for tool in request.tools or []
            ]
        )

        logger.debug(f"pydantic-ai request to {self.model_name}")
        response = await model_request(
            self.model_name,
            to_model_messages(request.messages),
            model_settings=settings or None,
            model_request_parameters=parameters,
        )

        text = "".join(p.content for p in response.parts if isinstance(p, TextPart))
        tool_calls = [
            {
                "id": part.tool_call_id,
                "function": {"name": part.tool_name, "arguments": part.args_as_json_str()},
            }
            for part in response.parts
            if isinstance(part, ToolCallPart)
        ]
        prompt_tokens = response.usage.input_tokens or 0
        completion_tokens = response.usage.output_tokens or 0

        return ChatCompletionResponse(
            model=response.model_name,
            choices=[
                {
                    "message": {
                        "role": "assistant",
                        "content": text,
                        "tool_calls": tool_calls or None,
                    },
                    "finish_reason": "tool_calls" if tool_calls else "stop",
                }
            ],
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        )

    async def create_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        if self._embedder is None:
            raise UnsupportedOperationError(
                f"No embedding backend configured for {self.model_name}"
            )
        return await self._embedder.create_embedding(request)
