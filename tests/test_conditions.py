"""Tests for condition rule evaluation."""

from __future__ import annotations

from typing import Any

import pytest


def _rule(field: str, operator: str, value: Any = None) -> Any:
    from litestar_automations.core.configs import ConditionRule

    return ConditionRule(field=field, operator=operator, value=value)  # type: ignore[arg-type]


PAYLOAD = {
    "text": "Hello, what is the PRICE?",
    "contact": {
        "name": "Ada",
        "email": "",
        "score": "42",
        "orders": 3,
        "tags": [{"id": "t1", "name": "VIP"}, "newsletter"],
        "vip": True,
    },
}


@pytest.mark.unit
class TestEvaluateRule:
    """Tests for single rule evaluation."""

    @pytest.mark.parametrize(
        ("field", "operator", "value", "expected"),
        [
            ("contact.name", "equals", "Ada", True),
            ("contact.name", "equals", "ada", False),
            ("contact.vip", "equals", True, True),
            ("contact.name", "not_equals", "Grace", True),
            ("text", "contains", "price", True),
            ("text", "contains", "discount", False),
            ("text", "not_contains", "discount", True),
            ("contact.tags", "contains", "newsletter", True),
            ("contact.orders", "greater_than", 2, True),
            ("contact.score", "greater_than", 50, False),
            ("contact.score", "less_than", "50", True),
            ("contact.name", "greater_than", 1, False),
            ("contact.vip", "greater_than", 0, False),
            ("contact.tags", "tag_has", "vip", True),
            ("contact.tags", "tag_has", "NEWSLETTER", True),
            ("contact.tags", "tag_has", "churned", False),
            ("contact.email", "field_is_empty", None, True),
            ("contact.phone", "field_is_empty", None, True),
            ("contact.name", "field_is_empty", None, False),
            ("contact.name", "is_not_empty", None, True),
            ("contact.missing", "contains", "x", False),
        ],
    )
    def test_operators(self, field: str, operator: str, value: Any, expected: bool) -> None:
        """Test each operator against a payload."""
        from litestar_automations.engine.conditions import evaluate_rule

        assert evaluate_rule(_rule(field, operator, value), PAYLOAD) is expected

    def test_evaluates_against_context(self) -> None:
        """Test rules resolve namespaced node outputs in an execution context."""
        from litestar_automations.core.context import ExecutionContext
        from litestar_automations.engine.conditions import evaluate_rule

        context = ExecutionContext({"text": "hi"})
        context.set("classify", "text", "billing")

        assert evaluate_rule(_rule("classify.text", "equals", "billing"), context)


@pytest.mark.unit
class TestEvaluateRules:
    """Tests for combined rules."""

    def test_all_requires_every_rule(self) -> None:
        """Test ``all`` is a conjunction."""
        from litestar_automations.core.types import MatchMode
        from litestar_automations.engine.conditions import evaluate_rules

        rules = [_rule("text", "contains", "price"), _rule("contact.tags", "tag_has", "churned")]

        assert evaluate_rules(rules, PAYLOAD, MatchMode.ALL) is False
        assert evaluate_rules(rules, PAYLOAD, MatchMode.ANY) is True

    def test_empty_rule_lists(self) -> None:
        """Test empty lists are true under ``all`` and false under ``any``."""
        from litestar_automations.core.types import MatchMode
        from litestar_automations.engine.conditions import evaluate_rules

        assert evaluate_rules([], PAYLOAD, MatchMode.ALL) is True
        assert evaluate_rules([], PAYLOAD, MatchMode.ANY) is False
