"""
Placeholder substitution for node configuration strings.

Templates reference the running payload with ``{{dot.path}}``. A path that
does not resolve is left in place verbatim.
"""

from typing import Any, Mapping, Sequence
import json
import re


PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")

MISSING = object()


def get_nested_value(data: Any, path: str) -> Any:
    """
    Look up a dot-separated path in nested mappings and lists.

    Returns MISSING when any step of the path does not exist.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, type(None), dict, list)):
        return json.dumps(value)
    return str(value)


def resolve_template(template: Any, data: Any) -> Any:
    """
    Substitute every ``{{path}}`` in a template with values from data.

    Non-string templates are returned unchanged.
    """
    if not isinstance(template, str):
        return template

    def replace(match: "re.Match[str]") -> str:
        value = get_nested_value(data, match.group(1).strip())
        if value is MISSING:
            return match.group(0)
        return _stringify(value)

    return PLACEHOLDER.sub(replace, template)
