from __future__ import annotations

import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_CODE_MODEL,
    DEFAULT_EMBEDDING_BATCH_SIZE,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TIMEOUT_MS,
)

PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "google": "GOOGLE_API_KEY",
    "meta": "META_API_KEY",
    "local": None,
}


class ProviderConfig(BaseModel):
    """Credentials and endpoint override for one model provider."""

    api_key: Optional[str] = None
    base_url: Optional[str] = None


class GatewayConfig(BaseModel):
    """Model gateway settings."""

    backend: Literal["http", "pydantic_ai"] = "http"
    timeout: float = 60.0
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)


class AgentConfig(BaseModel):
    """Default budgets for the agent loop."""

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    timeout_ms: int = DEFAULT_TIMEOUT_MS


class EmbeddingConfig(BaseModel):
    """Embedding service settings."""

    provider: str = "openai"
    model: str = DEFAULT_EMBEDDING_MODEL
    batch_size: int = DEFAULT_EMBEDDING_BATCH_SIZE


class CodeGenerationConfig(BaseModel):
    """Code generation collaborator settings."""

    provider: str = "openai"
    model: str = DEFAULT_CODE_MODEL


class AiflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    code_generation: CodeGenerationConfig = Field(
        default_factory=CodeGenerationConfig
    )

    def provider_credentials(self, provider: str) -> ProviderConfig:
        """Return the provider config with the API key filled from env if unset."""
        configured = self.gateway.providers.get(provider, ProviderConfig())
        if configured.api_key:
            return configured
        env_name = PROVIDER_KEY_ENV.get(provider)
        api_key = os.getenv(env_name) if env_name else None
        return configured.model_copy(update={"api_key": api_key})


def load_config(path: Optional[str] = None) -> AiflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AIFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("AIFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AiflowConfig(**data)
    else:
        config = AiflowConfig()

    env_db_url = os.getenv("AIFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_gateway = os.getenv("AIFLOW_GATEWAY")
    if env_gateway:
        config.gateway.backend = env_gateway
    return config
