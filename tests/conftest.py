import pytest

import aiflow.persistence as persistence
from aiflow.config import AiflowConfig
from aiflow.gateways import GatewayFactory
from aiflow.persistence import InMemoryStorage

from .fakes import TEST_MODEL, TEST_PROVIDER, ScriptedGateway, reply


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep host config, provider keys and cached storage out of every test."""
    monkeypatch.setenv("AIFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    for name in ("AIFLOW_DATABASE_URL", "DATABASE_URL", "AIFLOW_GATEWAY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_storage_instance", None)


@pytest.fixture
def config() -> AiflowConfig:
    return AiflowConfig()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway(default=reply("done"))


@pytest.fixture
def gateways(config, gateway) -> GatewayFactory:
    factory = GatewayFactory(config, backend="http")
    factory.put(TEST_PROVIDER, TEST_MODEL, gateway)
    factory.put(config.embedding.provider, config.embedding.model, gateway)
    factory.put(config.code_generation.provider, config.code_generation.model, gateway)
    return factory
