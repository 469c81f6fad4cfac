"""Exception hierarchy for the aiflow engine."""

from __future__ import annotations

from typing import Optional


class AiflowError(Exception):
    """Base class for all aiflow errors."""


class ConfigurationError(AiflowError):
    """Raised when required configuration (e.g. a provider key) is missing."""


class StorageError(AiflowError):
    """Raised when a storage backend cannot complete an operation."""


class DefinitionNotFoundError(AiflowError):
    """A workflow or agent id does not resolve for the requesting user."""

    def __init__(
        self, kind: str, definition_id: str, message: Optional[str] = None
    ) -> None:
        super().__init__(message or f"{kind.capitalize()} not found with ID: {definition_id}")
        self.kind = kind
        self.definition_id = definition_id


class MalformedWorkflowError(AiflowError):
    """The workflow graph failed validation."""


class CycleDetectedError(AiflowError):
    """A step would be executed twice within the same run."""

    def __init__(self, step_id: str) -> None:
        super().__init__(f"Cycle detected: step '{step_id}' was already executed in this run")
        self.step_id = step_id


class UnsupportedOperationError(AiflowError):
    """A step config names an operation, type or function that is not supported."""


class ConditionEvaluationError(AiflowError):
    """A branch condition uses an operator the engine does not understand."""


class StepExecutionError(AiflowError):
    """A step handler failed; carries the id of the failing step."""

    def __init__(self, step_id: str, message: str) -> None:
        super().__init__(message)
        self.step_id = step_id


class ToolNotFoundError(AiflowError):
    """The model requested a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool not found: {name}")
        self.name = name


class ToolExecutionError(AiflowError):
    """A tool raised while executing."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"Error executing tool: {message}")
        self.name = name


class GatewayError(AiflowError):
    """A model provider returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"AI API Error: {message}")
        self.status_code = status_code
