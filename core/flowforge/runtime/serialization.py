"""Defensive conversion of arbitrary node results into JSON-safe data.

Capability results are not required to be acyclic. Any container that
contains itself (directly or through descendants) is replaced by
``CIRCULAR_MARKER`` at the point where the cycle closes. Containers that are
merely shared between two branches are serialized in both places.
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

CIRCULAR_MARKER = "[Circular]"


def safe_serialize(value: Any) -> Any:
    """Return a JSON-compatible copy of ``value``."""
    return _serialize(value, set())


def _serialize(value: Any, ancestors: set[int]) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return _serialize(value.value, ancestors)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")

    marker = id(value)
    if marker in ancestors:
        return CIRCULAR_MARKER

    ancestors.add(marker)
    try:
        if isinstance(value, dict):
            return {str(k): _serialize(v, ancestors) for k, v in value.items()}
        if isinstance(value, (list, tuple, set, frozenset)):
            return [_serialize(item, ancestors) for item in value]
        if isinstance(value, BaseModel):
            return _serialize(dict(value), ancestors)
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
            return _serialize(fields, ancestors)
        return str(value)
    finally:
        ancestors.discard(marker)
