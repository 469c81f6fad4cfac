import pytest

from aiflow.contracts import Condition
from aiflow.exceptions import ConditionEvaluationError
from aiflow.workflow import evaluate_condition, next_step_id

VALID = Condition(field="valid", operator="==", value=True)


def test_condition_true_takes_first_branch():
    assert next_step_id(["A", "B"], VALID, {"valid": True}) == "A"


def test_condition_false_takes_second_branch():
    assert next_step_id(["A", "B"], VALID, {"valid": False}) == "B"


def test_single_next_step_always_taken():
    assert next_step_id(["A"], VALID, {"valid": False}) == "A"
    assert next_step_id(["A"], None, {}) == "A"


def test_no_next_steps_ends_walk():
    assert next_step_id([], VALID, {"valid": True}) is None


def test_condition_reads_nested_field():
    condition = Condition(field="summary.total", operator=">", value=100)
    assert next_step_id(["big", "small"], condition, {"summary": {"total": 250}}) == "big"
    assert next_step_id(["big", "small"], condition, {"summary": {"total": 50}}) == "small"
    assert next_step_id(["big", "small"], condition, {}) == "small"


@pytest.mark.parametrize(
    "actual, op, expected, outcome",
    [
        (3, "==", 3, True),
        (3, "!=", 4, True),
        (1, "==", True, False),
        (0, "==", False, False),
        (5, ">=", 5, True),
        (4, "<", 5, True),
        ("a", ">", 1, False),
        (None, "<=", 1, False),
        ("hello world", "contains", "world", True),
        (["x", "y"], "contains", "y", True),
        (["x", "y"], "not_contains", "z", True),
        (None, "contains", "a", False),
    ],
)
def test_evaluate_condition(actual, op, expected, outcome):
    assert evaluate_condition(actual, op, expected) is outcome


def test_unknown_operator_raises():
    with pytest.raises(ConditionEvaluationError):
        evaluate_condition(1, "~=", 1)
