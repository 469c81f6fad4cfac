"""aiflow: AI workflow and agent execution engine."""

from .actions import Actions
from .agent import AgentLoop, AgentStore
from .contracts import WorkflowDefinition, WorkflowExecutionResult
from .gateways import GatewayFactory
from .optimizer import SupplyChainOptimizer
from .persistence import get_storage
from .tools import ToolRegistry, default_registry
from .workflow import WorkflowInterpreter, WorkflowStore

__version__ = "0.1.0"
__all__ = [
    "Actions",
    "AgentLoop",
    "AgentStore",
    "GatewayFactory",
    "SupplyChainOptimizer",
    "ToolRegistry",
    "WorkflowDefinition",
    "WorkflowExecutionResult",
    "WorkflowInterpreter",
    "WorkflowStore",
    "default_registry",
    "get_storage",
]
