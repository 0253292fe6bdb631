from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Mapping

from app.models.enums import ConditionLogic, ConditionOperator
from app.notifications.paths import get_path, stringify

logger = logging.getLogger("notifications")

_COMMON_FIELDS = [
    {"field": "user.role", "label": "Recipient Role", "type": "string"},
    {"field": "user.location_id", "label": "Recipient Location ID", "type": "string"},
    {"field": "user.email", "label": "Recipient Email", "type": "string"},
]

_TRANSFER_FIELDS = [
    {"field": "transfer.status", "label": "Transfer Status", "type": "string"},
    {"field": "transfer.priority", "label": "Transfer Priority", "type": "string"},
    {"field": "transfer.customer_waiting", "label": "Customer Waiting", "type": "boolean"},
    {"field": "transfer.from_location_id", "label": "From Location ID", "type": "string"},
    {"field": "transfer.to_location_id", "label": "To Location ID", "type": "string"},
    {"field": "vehicle.location_id", "label": "Vehicle Location ID", "type": "string"},
    {"field": "vehicle.price", "label": "Vehicle Price", "type": "number"},
    {"field": "vehicle.year", "label": "Vehicle Year", "type": "string"},
    {"field": "vehicle.make", "label": "Vehicle Make", "type": "string"},
    {"field": "vehicle.model", "label": "Vehicle Model", "type": "string"},
]


def _condition_parts(condition: Any) -> tuple[str, str, str]:
    if isinstance(condition, Mapping):
        return (
            str(condition.get("field") or ""),
            str(condition.get("operator") or ""),
            stringify(condition.get("value")),
        )
    return str(condition.field), str(condition.operator), stringify(condition.value)


def _contains(resolved: Any, expected: str) -> bool:
    if isinstance(resolved, str):
        return expected.lower() in resolved.lower()
    if isinstance(resolved, Sequence) and not isinstance(resolved, (bytes, bytearray)):
        return expected in [stringify(item) for item in resolved]
    return False


def evaluate_condition(condition: Any, context: Any) -> bool:
    field, operator, expected = _condition_parts(condition)
    resolved = get_path(context, field)

    if operator == ConditionOperator.EQUALS:
        return stringify(resolved) == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return stringify(resolved) != expected
    if operator == ConditionOperator.CONTAINS:
        return _contains(resolved, expected)
    if operator == ConditionOperator.NOT_CONTAINS:
        return not _contains(resolved, expected)

    logger.warning("Unknown condition operator %r on field %s", operator, field)
    return False


def evaluate_rule(rule: Any, context: Any) -> bool:
    """Apply a rule's conditions to a context.

    A rule without conditions always matches. AND stops at the first failing
    condition and OR stops at the first passing one.
    """
    if isinstance(rule, Mapping):
        conditions = rule.get("conditions") or []
        logic = rule.get("condition_logic") or ConditionLogic.AND
    else:
        conditions = rule.conditions or []
        logic = rule.condition_logic or ConditionLogic.AND

    if not conditions:
        return True

    if str(logic).upper() == ConditionLogic.OR:
        return any(evaluate_condition(condition, context) for condition in conditions)
    return all(evaluate_condition(condition, context) for condition in conditions)


def available_fields(event: str) -> list[dict[str, str]]:
    if str(event).startswith("transfer_"):
        return [*_COMMON_FIELDS, *_TRANSFER_FIELDS]
    return list(_COMMON_FIELDS)
