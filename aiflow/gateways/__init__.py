"""Model gateway factory and initialization."""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from ..config import AiflowConfig, load_config
from ..exceptions import ConfigurationError
from .base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    EmbeddingRequest,
    EmbeddingResponse,
    FunctionSchema,
    ModelGateway,
    ToolCall,
    ToolSchema,
)
from .http import HTTPModelGateway

logger = logging.getLogger(__name__)

KEYLESS_PROVIDERS = ("local",)


class GatewayFactory:
    """Keyed cache of gateways, one per ``provider:model``.

    Credentials come from the injected configuration (with provider API keys
    filled in from the environment).
    """

    def __init__(
        self, config: Optional[AiflowConfig] = None, backend: Optional[str] = None
    ) -> None:
        self.config = config or load_config()
        self.backend = (
            backend or os.getenv("AIFLOW_GATEWAY") or self.config.gateway.backend
        ).lower()
        self._gateways: Dict[str, ModelGateway] = {}

    def get(self, provider: str, model: str) -> ModelGateway:
        """Return the cached gateway for ``provider:model``, creating it on first use."""
        key = f"{provider}:{model}"
        gateway = self._gateways.get(key)
        if gateway is None:
            gateway = self._create(provider, model)
            self._gateways[key] = gateway
            logger.debug(f"Created {self.backend} gateway for {key}")
        return gateway

    def put(self, provider: str, model: str, gateway: ModelGateway) -> None:
        """Pre-seed the cache with an existing gateway."""
        self._gateways[f"{provider}:{model}"] = gateway

    async def aclose(self) -> None:
        for gateway in self._gateways.values():
            await gateway.aclose()
        self._gateways.clear()

    def _http_gateway(self, provider: str) -> HTTPModelGateway:
        credentials = self.config.provider_credentials(provider)
        if not credentials.api_key and provider not in KEYLESS_PROVIDERS:
            raise ConfigurationError(f"No API key configured for provider: {provider}")
        return HTTPModelGateway(
            provider,
            api_key=credentials.api_key,
            base_url=credentials.base_url,
            timeout=self.config.gateway.timeout,
        )

    def _create(self, provider: str, model: str) -> ModelGateway:
        if self.backend == "http":
            return self._http_gateway(provider)
        elif self.backend == "pydantic_ai":
            from .pai import PydanticAIGateway

            has_key = bool(self.config.provider_credentials(provider).api_key)
            embedder = self._http_gateway(provider) if has_key else None
            return PydanticAIGateway(provider, model, embedder=embedder)
        else:
            raise ConfigurationError(f"Unsupported gateway backend: {self.backend}")


__all__ = [
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "FunctionSchema",
    "GatewayFactory",
    "HTTPModelGateway",
    "ModelGateway",
    "ToolCall",
    "ToolSchema",
]
