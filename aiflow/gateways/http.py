"""Model gateway speaking each provider's HTTP API through httpx."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..exceptions import GatewayError, UnsupportedOperationError
from .base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    ModelGateway,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1",
    "mistral": "https://api.mistral.ai/v1",
    "google": "https://generativelanguage.googleapis.com/v1",
    "meta": "https://api.llama-api.com",
    "local": "http://localhost:8000",
}

ANTHROPIC_VERSION = "2023-06-01"

# Providers whose chat API already speaks the normalised shape.
OPENAI_COMPATIBLE = ("openai", "mistral", "local")
EMBEDDING_ENDPOINTS = {
    "openai": "/embeddings",
    "mistral": "/embeddings",
    "local": "/v1/embeddings",
}


class HTTPModelGateway(ModelGateway):
    """Translate normalised requests to a provider's REST API and back."""

    def __init__(
        self,
        provider: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if provider not in DEFAULT_BASE_URLS:
            raise UnsupportedOperationError(f"Unsupported provider: {provider}")
        self.provider = provider
        self.api_key = api_key or ""
        self.base_url = (base_url or DEFAULT_BASE_URLS[provider]).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    async def create_chat_completion(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionResponse:
        url = f"{self.base_url}{self._chat_endpoint(request.model)}"
        params = {"key": self.api_key} if self.provider == "google" else None
        logger.debug(f"POST {url} ({self.provider}:{request.model})")

        response = await self._client.post(
            url,
            headers=self._headers(),
            params=params,
            json=self._format_chat_request(request),
        )
        self._raise_for_error(response)
        return self._format_chat_response(response.json(), request.model)

    async def create_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        endpoint = EMBEDDING_ENDPOINTS.get(self.provider)
        if endpoint is None:
            raise UnsupportedOperationError(
                f"Unsupported provider for embeddings: {self.provider}"
            )
        response = await self._client.post(
            f"{self.base_url}{endpoint}",
            headers=self._headers(),
            json={
                "model": request.model,
                "input": request.input,
                "encoding_format": "float",
            },
        )
        self._raise_for_error(response)
        return EmbeddingResponse.model_validate(response.json())

    # ------------------------------------------------------------------
    def _chat_endpoint(self, model: str) -> str:
        if self.provider == "anthropic":
            return "/messages"
        if self.provider == "google":
            return f"/models/{model}:generateContent"
        if self.provider == "meta":
            return "/v1/completions"
        if self.provider == "local":
            return "/v1/chat/completions"
        return "/chat/completions"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.provider == "anthropic":
            headers["x-api-key"] = self.api_key
            headers["anthropic-version"] = ANTHROPIC_VERSION
        elif self.provider in ("openai", "mistral", "meta"):
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _format_chat_request(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        if self.provider in OPENAI_COMPATIBLE:
            body = request.model_dump(exclude_none=True)
            if self.provider != "openai":
                body.pop("response_format", None)
            return body

        if self.provider == "anthropic":
            system = "\n\n".join(
                m.content or "" for m in request.messages if m.role == "system"
            )
            body = {
                "model": request.model,
                "messages": [
                    {"role": "assistant" if m.role == "assistant" else "user", "content": m.content or ""}
                    for m in request.messages
                    if m.role != "system"
                ],
                "max_tokens": request.max_tokens or 1024,
            }
            if system:
                body["system"] = system
            if request.temperature is not None:
                body["temperature"] = request.temperature
            return body

        if self.provider == "google":
            return {
                "contents": [
                    {
                        "role": "model" if m.role == "assistant" else "user",
                        "parts": [{"text": m.content or ""}],
                    }
                    for m in request.messages
                ],
                "generationConfig": {
                    "temperature": request.temperature or 0.7,
                    "topP": 0.95,
                    "maxOutputTokens": request.max_tokens or 1024,
                },
            }

        # meta
        return {
            "model": request.model,
            "messages": [
                {
                    "role": m.role if m.role in ("assistant", "system") else "user",
                    "content": m.content or "",
                }
                for m in request.messages
            ],
            "temperature": request.temperature or 0.7,
            "top_p": 0.9,
            "max_tokens": request.max_tokens or 800,
            "stream": False,
        }

    def _format_chat_response(self, data: Dict[str, Any], model: str) -> ChatCompletionResponse:
        if self.provider in OPENAI_COMPATIBLE:
            return ChatCompletionResponse.model_validate(data)

        if self.provider == "anthropic":
            usage = data.get("usage") or {}
            prompt = usage.get("input_tokens", 0)
            completion = usage.get("output_tokens", 0)
            text = "".join(
                block.get("text", "")
                for block in data.get("content") or []
                if block.get("type", "text") == "text"
            )
            stop_reason = data.get("stop_reason")
            return ChatCompletionResponse(
                id=data.get("id"),
                model=data.get("model", model),
                choices=[
                    {
                        "message": {"role": "assistant", "content": text},
                        "finish_reason": "stop" if stop_reason == "end_turn" else stop_reason,
                    }
                ],
                usage={
                    "prompt_tokens": prompt,
                    "completion_tokens": completion,
                    "total_tokens": prompt + completion,
                },
            )

        if self.provider == "google":
            candidate = (data.get("candidates") or [{}])[0]
            parts = (candidate.get("content") or {}).get("parts") or [{}]
            metadata = data.get("usageMetadata") or {}
            prompt = metadata.get("promptTokenCount", 0)
            completion = metadata.get("candidatesTokenCount", 0)
            return ChatCompletionResponse(
                id=data.get("name") or f"gemini-{int(time.time() * 1000)}",
                model=data.get("model", model),
                choices=[
                    {
                        "message": {"role": "assistant", "content": parts[0].get("text", "")},
                        "finish_reason": "stop" if candidate.get("finishReason") == "STOP" else "length",
                    }
                ],
                usage={
                    "prompt_tokens": prompt,
                    "completion_tokens": completion,
                    "total_tokens": prompt + completion,
                },
            )

        # meta
        choice = (data.get("choices") or [{}])[0]
        content = (choice.get("message") or {}).get("content") or choice.get("text") or ""
        return ChatCompletionResponse(
            id=data.get("id") or f"meta-{int(time.time() * 1000)}",
            model=data.get("model", model),
            choices=[
                {
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": choice.get("finish_reason") or "stop",
                }
            ],
            usage=data.get("usage") or {},
        )

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        if response.is_success:
            return
        message = response.reason_phrase or f"Status {response.status_code}"
        try:
            payload = response.json()
        except json.JSONDecodeError:
            payload = None
            message = response.text or message
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                message = error["message"]
            elif isinstance(error, str):
                message = error
        logger.error(f"Model provider returned {response.status_code}: {message}")
        raise GatewayError(message, status_code=response.status_code)
