from aiflow.contracts import WorkflowRunContext
from aiflow.substitution import get_value_from_path, process_value, stringify, substitute


def _context(**results) -> WorkflowRunContext:
    return WorkflowRunContext(
        workflow_id="wf",
        run_id="run",
        user_id="u1",
        input={"name": "Bob", "address": {"city": "Lyon"}, "tags": ["a", "b"]},
        results=results,
    )


def test_substitute_input_and_step_results():
    context = _context(step1={"count": 3})
    assert substitute("${input.name} ordered ${step1.count}", context) == "Bob ordered 3"


def test_unresolvable_token_left_verbatim():
    context = _context(step1={"count": 3})
    text = "${input.missing} and ${step2.count} and ${step1.count.deeper}"
    assert substitute(text, context) == text


def test_nested_paths_and_list_indices():
    context = _context()
    assert substitute("${input.address.city}/${input.tags.1}", context) == "Lyon/b"
    assert substitute("${input.tags.7}", context) == "${input.tags.7}"


def test_non_scalar_values_are_rendered_as_json():
    context = _context(step1={"items": [1, 2], "ok": True, "ratio": 2.0})
    assert substitute("${step1.items}", context) == "[1,2]"
    assert substitute("${step1.ok}", context) == "true"
    assert substitute("${step1.ratio}", context) == "2"


def test_non_string_values_pass_through():
    context = _context()
    assert substitute(42, context) == 42
    assert substitute("", context) == ""
    assert substitute(None, context) is None


def test_process_value_walks_lists_and_dicts():
    context = _context(step1={"count": 3})
    value = {"who": "Hi ${input.name}", "items": ["${step1.count} units", 5], "flag": False}
    assert process_value(value, context) == {"who": "Hi Bob", "items": ["3 units", 5], "flag": False}


def test_get_value_from_path_on_objects():
    context = _context(step1={"count": 3})
    assert get_value_from_path(context, ["results", "step1", "count"]) == 3
    assert get_value_from_path(context, ["nope", "x"]) is None


def test_stringify_scalars():
    assert stringify(False) == "false"
    assert stringify(1.5) == "1.5"
    assert stringify("x") == "x"


def test_process_value_keeps_type_of_whole_token():
    context = _context(step1={"items": [{"id": 1}], "count": 3})
    assert process_value("${step1.items}", context) == [{"id": 1}]
    assert process_value({"n": "${step1.count}"}, context) == {"n": 3}
    assert process_value("${step1.nothing}", context) == "${step1.nothing}"
    assert process_value("x${step1.count}", context) == "x3"
