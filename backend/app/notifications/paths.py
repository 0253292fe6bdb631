"""Dotted-path lookup shared by the template renderer and the rule evaluator."""
from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


SCALAR_TYPES = (str, bytes, bool, int, float, Decimal, datetime, date, Enum)


def _step(current: Any, part: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(part)
    if isinstance(current, SCALAR_TYPES):
        return None
    if isinstance(current, Sequence):
        if part.lstrip("-").isdigit():
            index = int(part)
            if -len(current) <= index < len(current):
                return current[index]
        return None
    if part.startswith("_"):
        return None
    value = getattr(current, part, None)
    if callable(value):
        return None
    return value


def get_path(data: Any, path: str) -> Any:
    """Resolve ``a.b.c`` against nested mappings, objects and sequences.

    Any missing or ``None`` step yields ``None``; lookups never raise.
    """
    if data is None or not path:
        return None
    current = data
    for part in path.strip().split("."):
        if not part:
            return None
        current = _step(current, part)
        if current is None:
            return None
    return current


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, Decimal):
        return str(int(value)) if value == value.to_integral_value() else str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return json.dumps(value, default=str, sort_keys=True)
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    return str(value)
