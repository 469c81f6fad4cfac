"""Resolution of ``${path.to.value}`` tokens against a run context."""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Mapping

from .contracts import WorkflowRunContext

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")


def get_value_from_path(obj: Any, path: Iterable[str]) -> Any:
    """Walk ``path`` through nested mappings, sequences and attributes.

    Returns ``None`` as soon as a segment cannot be resolved.
    """
    current = obj
    for key in path:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, key, None)
    return current


def variable_scope(context: WorkflowRunContext) -> dict[str, Any]:
    """The object tokens resolve against: ``input`` plus every step result."""
    return {"input": context.input, **context.results}


def stringify(value: Any) -> str:
    """Render a resolved value the way it appears inside substituted text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def substitute(text: Any, context: WorkflowRunContext) -> Any:
    """Replace every resolvable ``${...}`` token in ``text``.

    Unresolvable tokens are left verbatim. Non-string input is returned as-is.
    """
    if not isinstance(text, str) or not text:
        return text

    scope = variable_scope(context)

    def _replace(match: re.Match[str]) -> str:
        value = get_value_from_path(scope, match.group(1).split("."))
        return match.group(0) if value is None else stringify(value)

    return VARIABLE_PATTERN.sub(_replace, text)


def process_value(value: Any, context: WorkflowRunContext) -> Any:
    """Apply :func:`substitute` recursively through lists and dicts.

    A string consisting of exactly one token resolves to the referenced value
    itself, so lists and mappings produced by earlier steps keep their type.
    """
    if isinstance(value, str):
        whole = VARIABLE_PATTERN.fullmatch(value)
        if whole:
            resolved = get_value_from_path(variable_scope(context), whole.group(1).split("."))
            if resolved is not None:
                return resolved
        return substitute(value, context)
    if isinstance(value, list):
        return [process_value(item, context) for item in value]
    if isinstance(value, dict):
        return {key: process_value(val, context) for key, val in value.items()}
    return value
