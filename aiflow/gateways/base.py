"""Provider-neutral model gateway interface."""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant", "tool"]


class ToolCallFunction(BaseModel):
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """A model-requested tool invocation with JSON-encoded arguments."""

    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction


class ChatMessage(BaseModel):
    """One entry in a conversation history."""

    model_config = ConfigDict(extra="allow")

    role: Role
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None


class FunctionSchema(BaseModel):
    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


class ToolSchema(BaseModel):
    """Tool description advertised to the model."""

    type: Literal["function"] = "function"
    function: FunctionSchema


class ChatCompletionRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: Optional[List[ToolSchema]] = None
    tool_choice: Optional[Any] = None
    response_format: Optional[Dict[str, Any]] = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = "stop"


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Normalised chat completion regardless of which provider answered."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice]
    usage: Usage = Field(default_factory=Usage)


class EmbeddingRequest(BaseModel):
    model: str
    input: Union[str, List[str]]


class EmbeddingData(BaseModel):
    model_config = ConfigDict(extra="allow")

    embedding: List[float]
    index: int = 0


class EmbeddingResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: List[EmbeddingData]
    model: Optional[str] = None


class ModelGateway(metaclass=abc.ABCMeta):
    """Abstract client for one provider/model pair."""

    provider: str

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""
        pass

    @abc.abstractmethod
    async def create_chat_completion(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionResponse:
        """Run one chat completion."""
        raise NotImplementedError

    @abc.abstractmethod
    async def create_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        """Embed one or more input strings."""
        raise NotImplementedError
