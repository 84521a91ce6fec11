"""Condition rule evaluation.

Shared by condition nodes, which test the execution context, and by trigger
sub-conditions, which test the event payload.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from litestar_automations.core.context import ExecutionContext
from litestar_automations.core.types import ConditionOperator, MatchMode

if TYPE_CHECKING:
    from litestar_automations.core.configs import ConditionRule

__all__ = ["evaluate_rule", "evaluate_rules"]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return not value
    return False


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    if isinstance(actual, str):
        return str(expected).casefold() in actual.casefold()
    if isinstance(actual, Mapping):
        return expected in actual
    if isinstance(actual, Iterable):
        return _tag_has(actual, expected)
    return False


def _tag_has(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, (list, tuple, set)):
        return False
    wanted = expected.casefold() if isinstance(expected, str) else expected
    for item in actual:
        if isinstance(item, Mapping):
            item = item.get("name", item.get("id"))
        if isinstance(item, str) and isinstance(wanted, str):
            if item.casefold() == wanted:
                return True
        elif item == wanted:
            return True
    return False


def _compare(actual: Any, expected: Any, operator: ConditionOperator) -> bool:
    left, right = _to_number(actual), _to_number(expected)
    if left is None or right is None:
        return False
    if operator == ConditionOperator.GREATER_THAN:
        return left > right
    return left < right


def evaluate_rule(rule: ConditionRule, source: ExecutionContext | Mapping[str, Any]) -> bool:
    """Evaluate one rule.

    Missing fields are treated as None: they are empty, equal nothing, and
    contain nothing.

    Args:
        rule: The rule to evaluate.
        source: Execution context, or a plain payload mapping.

    Returns:
        The boolean outcome.
    """
    context = source if isinstance(source, ExecutionContext) else ExecutionContext(dict(source))
    actual = context.get(rule.field)
    operator = rule.operator

    if operator == ConditionOperator.EQUALS:
        return actual == rule.value
    if operator == ConditionOperator.NOT_EQUALS:
        return actual != rule.value
    if operator == ConditionOperator.CONTAINS:
        return _contains(actual, rule.value)
    if operator == ConditionOperator.NOT_CONTAINS:
        return not _contains(actual, rule.value)
    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        return _compare(actual, rule.value, operator)
    if operator == ConditionOperator.TAG_HAS:
        return _tag_has(actual, rule.value)
    if operator == ConditionOperator.FIELD_IS_EMPTY:
        return _is_empty(actual)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(actual)
    return False


def evaluate_rules(
    rules: Iterable[ConditionRule],
    source: ExecutionContext | Mapping[str, Any],
    match: MatchMode = MatchMode.ALL,
) -> bool:
    """Evaluate a list of rules combined with ``all`` or ``any``.

    An empty list is true under ``all`` and false under ``any``.
    """
    context = source if isinstance(source, ExecutionContext) else ExecutionContext(dict(source))
    results = (evaluate_rule(rule, context) for rule in rules)
    if match == MatchMode.ANY:
        return any(results)
    return all(results)
