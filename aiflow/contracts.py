"""Core contracts for the aiflow workflow and agent engine."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

StepType = Literal[
    "agent", "embedding", "supply_chain", "code_generation", "data_analysis", "custom"
]
ConditionOperator = Literal["==", "!=", ">", "<", ">=", "<=", "contains", "not_contains"]
RunStatus = Literal["pending", "running", "completed", "failed"]


class Condition(BaseModel):
    """Branch test applied to a step's own result."""

    field: str
    operator: ConditionOperator
    value: Any = None


# ----------------------------------------------------------------------
# Step configs, one per step type


class _StepConfig(BaseModel):
    model_config = ConfigDict(extra="allow")


class AgentStepConfig(_StepConfig):
    agent_id: str
    query: str = ""
    max_iterations: Optional[int] = None
    timeout_ms: Optional[int] = None
    verbose: bool = False


class EmbeddingStepConfig(_StepConfig):
    operation: Literal["create", "search"]
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    query: Optional[str] = None
    limit: int = 5
    threshold: float = 0.7
    name: Optional[str] = None
    description: Optional[str] = None


class SupplyChainStepConfig(_StepConfig):
    operation: Literal[
        "optimize_packaging", "optimize_shipping_routes", "optimize_supply_chain"
    ]
    items: Any = None
    available_packages: Any = None
    origin: Any = None
    destination: Any = None
    carriers: Any = None


class CodeGenerationStepConfig(_StepConfig):
    operation: Literal["generate", "review"]
    language: str
    description: Optional[str] = None
    context: Optional[str] = None
    framework: Optional[str] = None
    libraries: Optional[List[str]] = None
    examples: Optional[List[str]] = None
    code: Optional[str] = None
    focus: Optional[List[str]] = None


class DataAnalysisStepConfig(_StepConfig):
    operation: Literal["analyze"] = "analyze"
    data_source: str
    analysis_type: Literal["summary", "trends", "anomalies", "forecast"]
    time_period: Optional[str] = None


class CustomStepConfig(_StepConfig):
    function_name: Literal["fetch_data", "transform_data", "save_data"]
    parameters: Dict[str, Any] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# Steps


class _StepBase(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    next_steps: List[str] = Field(default_factory=list)
    condition: Optional[Condition] = None


class AgentStep(_StepBase):
    type: Literal["agent"]
    config: AgentStepConfig


class EmbeddingStep(_StepBase):
    type: Literal["embedding"]
    config: EmbeddingStepConfig


class SupplyChainStep(_StepBase):
    type: Literal["supply_chain"]
    config: SupplyChainStepConfig


class CodeGenerationStep(_StepBase):
    type: Literal["code_generation"]
    config: CodeGenerationStepConfig


class DataAnalysisStep(_StepBase):
    type: Literal["data_analysis"]
    config: DataAnalysisStepConfig


class CustomStep(_StepBase):
    type: Literal["custom"]
    config: CustomStepConfig


Step = Annotated[
    Union[
        AgentStep,
        EmbeddingStep,
        SupplyChainStep,
        CodeGenerationStep,
        DataAnalysisStep,
        CustomStep,
    ],
    Field(discriminator="type"),
]


class WorkflowDefinition(BaseModel):
    """A directed graph of steps owned by a user."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    entry_step_id: Optional[str] = None
    trigger_type: str = "manual"
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    def step_map(self) -> Dict[str, Step]:
        """Adjacency lookup keyed by step id."""
        return {step.id: step for step in self.steps}


# ----------------------------------------------------------------------
# Runs


class WorkflowRunContext(BaseModel):
    """Mutable scratch state threaded through one run."""

    workflow_id: str
    run_id: str
    user_id: str
    input: Dict[str, Any] = Field(default_factory=dict)
    results: Dict[str, Any] = Field(default_factory=dict)
    current_step: str = ""
    completed_steps: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class WorkflowRun(BaseModel):
    """Durable record of one workflow execution."""

    model_config = ConfigDict(extra="ignore")

    id: str
    workflow_id: str
    user_id: str
    status: RunStatus = "pending"
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    results: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None


class WorkflowExecutionResult(BaseModel):
    """Outcome returned by ``WorkflowInterpreter.execute_workflow``."""

    workflow_id: str
    run_id: str
    status: Literal["completed", "failed"]
    results: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    execution_time: int = 0


# ----------------------------------------------------------------------
# Agent execution


class ToolCallRecord(BaseModel):
    """A successful tool invocation made during an agent run."""

    tool: str
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def add(self, prompt: int, completion: int, total: int) -> None:
        self.prompt += prompt
        self.completion += completion
        self.total += total


class AgentExecutionResult(BaseModel):
    """Accumulated outcome of one agent loop."""

    agent_id: str
    final_response: str = ""
    iterations: int = 0
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    elapsed_ms: int = 0
