from .branching import evaluate_condition, next_step_id
from .custom import CustomFunctions, transform_data
from .graph import resolve_entry_step, validate_workflow
from .handlers import StepHandlers
from .interpreter import WorkflowInterpreter
from .store import WorkflowStore, parse_workflow

__all__ = [
    "CustomFunctions",
    "StepHandlers",
    "WorkflowInterpreter",
    "WorkflowStore",
    "evaluate_condition",
    "next_step_id",
    "parse_workflow",
    "resolve_entry_step",
    "transform_data",
    "validate_workflow",
]
