"""Branch condition evaluation and next-step resolution."""

from __future__ import annotations

import operator
from typing import Any, Optional

from ..contracts import Condition
from ..exceptions import ConditionEvaluationError
from ..substitution import get_value_from_path, stringify

_ORDERING = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def _equal(left: Any, right: Any) -> bool:
    # booleans never equal numbers
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _contains(container: Any, needle: Any) -> bool:
    if isinstance(container, (list, tuple, set)):
        return any(_equal(item, needle) for item in container)
    if container is None:
        return False
    return stringify(needle) in stringify(container)


def evaluate_condition(actual: Any, op: str, expected: Any) -> bool:
    """Apply ``op`` to ``actual`` and ``expected``.

    Ordering comparisons between incomparable values are false.

    Raises:
        ConditionEvaluationError: If ``op`` is not a supported operator.
    """
    if op == "==":
        return _equal(actual, expected)
    if op == "!=":
        return not _equal(actual, expected)
    if op in _ORDERING:
        if actual is None or expected is None:
            return False
        try:
            return bool(_ORDERING[op](actual, expected))
        except TypeError:
            return False
    if op == "contains":
        return _contains(actual, expected)
    if op == "not_contains":
        return not _contains(actual, expected)
    raise ConditionEvaluationError(f"Unsupported operator: {op}")


def condition_met(condition: Condition, step_result: Any) -> bool:
    actual = get_value_from_path(step_result, condition.field.split("."))
    return evaluate_condition(actual, condition.operator, condition.value)


def next_step_id(
    next_steps: list[str], condition: Optional[Condition], step_result: Any
) -> Optional[str]:
    """Pick the step to run after a step that produced ``step_result``.

    ``None`` means the walk ends here.
    """
    if not next_steps:
        return None
    if len(next_steps) == 1:
        return next_steps[0]
    if condition is not None:
        return next_steps[0] if condition_met(condition, step_result) else next_steps[1]
    return next_steps[0]
