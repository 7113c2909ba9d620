"""Variable replacement for node configuration strings.

Templates reference run data with ``${dotted.path}``; the first segment is
a node id (or an initial input key)::

    resolve_variables("Title: ${fetch.data.title}", run.data)

Missing paths become the empty string. Structured values are rendered as
indented JSON so a downstream consumer (e.g. a prompt) can still parse them.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

from flowforge.runtime.serialization import safe_serialize

VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")

_MISSING = object()


def get_nested_value(data: Any, path: str) -> Any:
    """
    Read a dotted path from nested mappings and sequences.

    Numeric segments index into lists: ``get_nested_value(d, "items.0.name")``.
    Returns None if any segment is missing.
    """
    current = data
    for key in path.split("."):
        current = _step(current, key)
        if current is _MISSING:
            return None
    return current


def _step(current: Any, key: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(key, _MISSING)
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        try:
            return current[int(key)]
        except (ValueError, IndexError):
            return _MISSING
    return _MISSING


def format_value(value: Any) -> str:
    """Render a resolved value for insertion into a template."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return json.dumps(safe_serialize(value), indent=2, ensure_ascii=False)


def resolve_variables(template: str, data: Mapping[str, Any]) -> str:
    """Replace every ``${path}`` in ``template`` with its value from ``data``."""
    if not isinstance(template, str) or "${" not in template:
        return template

    def _replace(match: re.Match) -> str:
        return format_value(get_nested_value(data, match.group(1).strip()))

    return VARIABLE_PATTERN.sub(_replace, template)


def find_variables(template: str) -> list[str]:
    """List the paths referenced by a template, in order of appearance."""
    if not isinstance(template, str):
        return []
    return [m.strip() for m in VARIABLE_PATTERN.findall(template)]
