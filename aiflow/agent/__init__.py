from .definitions import AgentDefinition, AgentParameters, AgentStore, AIModel
from .loop import AgentLoop

__all__ = ["AIModel", "AgentDefinition", "AgentLoop", "AgentParameters", "AgentStore"]
