"""Visibility conditions for form fields and sections.

A condition references another field by id and is met when that field's
submitted value equals ``value`` or, for multi-valued fields, contains
``contains``. A field that was not submitted never satisfies a condition.
"""

from collections.abc import Mapping
from typing import Any

from intake.schemas.forms import FieldCondition


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _as_collection(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _contains(collection: list[Any], expected: Any) -> bool:
    target = _normalize(expected)
    return any(_normalize(item) == target for item in collection)


def is_met(condition: FieldCondition | Mapping[str, Any] | None, data: Mapping[str, Any]) -> bool:
    """Evaluate ``condition`` against submitted ``data``."""
    if condition is None:
        return True
    if isinstance(condition, Mapping):
        condition = FieldCondition.model_validate(condition)

    if condition.field not in data:
        return False
    current = data[condition.field]
    if current is None:
        return False

    if condition.contains is not None:
        return _contains(_as_collection(current), condition.contains)

    if condition.value is not None:
        if isinstance(current, (list, tuple, set)):
            return _contains(list(current), condition.value)
        return _normalize(current) == _normalize(condition.value)

    return True


def is_active(item: Any, data: Mapping[str, Any]) -> bool:
    """Whether a field or section is shown for ``data`` (unconditional items always are)."""
    condition = getattr(item, "condition", None)
    if condition is None and isinstance(item, Mapping):
        condition = item.get("condition")
    return is_met(condition, data)
