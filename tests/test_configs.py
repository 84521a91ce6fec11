"""Tests for kind-specific node configuration schemas."""

from __future__ import annotations

from datetime import timedelta

import pytest


@pytest.mark.unit
class TestParseNodeConfig:
    """Tests for parse_node_config."""

    def test_trigger_config(self) -> None:
        """Test parsing a trigger config with sub-conditions."""
        from litestar_automations.core.configs import TriggerConfig, parse_node_config
        from litestar_automations.core.types import ConditionOperator, EventType, MatchMode

        config = parse_node_config(
            "trigger",
            {
                "event_type": "message_received",
                "conditions": [{"field": "message.text", "operator": "contains", "value": "price"}],
                "match": "any",
            },
        )

        assert isinstance(config, TriggerConfig)
        assert config.event_type == EventType.MESSAGE_RECEIVED
        assert config.match == MatchMode.ANY
        assert config.conditions[0].operator == ConditionOperator.CONTAINS

    def test_action_union_is_discriminated(self) -> None:
        """Test the ``action`` field selects the action schema."""
        from litestar_automations.core.configs import (
            AddTagsConfig,
            AssignAgentConfig,
            CallWebhookConfig,
            parse_node_config,
        )

        assert isinstance(parse_node_config("action", {"action": "add_tags", "tags": ["vip"]}), AddTagsConfig)
        assert isinstance(parse_node_config("action", {"action": "assign_agent", "team_id": "t1"}), AssignAgentConfig)
        assert isinstance(
            parse_node_config("action", {"action": "call_webhook", "url": "https://hooks.example.com"}),
            CallWebhookConfig,
        )

    def test_unknown_action(self) -> None:
        """Test an unknown action name is a config error."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError, match="Invalid action config"):
            parse_node_config("action", {"action": "launch_rocket"}, "n1")

    def test_unknown_option_is_rejected(self) -> None:
        """Test options not recognized by the kind are rejected."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError) as exc_info:
            parse_node_config("delay", {"amount": 5, "unit": "minutes", "jitter": True}, "wait")

        assert exc_info.value.node_id == "wait"
        assert "jitter" in str(exc_info.value)

    def test_send_message_requires_body(self) -> None:
        """Test send_message needs a template or a text."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError, match="template_id or text"):
            parse_node_config("action", {"action": "send_message"})

    def test_assign_agent_requires_target(self) -> None:
        """Test assign_agent needs an agent or a team."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError):
            parse_node_config("action", {"action": "assign_agent"})

    def test_webhook_url_scheme(self) -> None:
        """Test webhook urls must be http(s)."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError, match="http"):
            parse_node_config("action", {"action": "call_webhook", "url": "ftp://files.example.com"})

    def test_condition_requires_rules(self) -> None:
        """Test condition nodes need at least one rule."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError):
            parse_node_config("condition", {"rules": []})

    def test_categorize_requires_categories(self) -> None:
        """Test the categorize task needs categories."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError, match="category"):
            parse_node_config("ai_response", {"task": "categorize", "prompt": "{{text}}"})

    def test_ai_defaults(self) -> None:
        """Test AI response defaults."""
        from litestar_automations.core.configs import AIResponseConfig, parse_node_config
        from litestar_automations.core.types import AITask, FailurePolicy

        config = parse_node_config("ai_response", {"prompt": "Answer: {{text}}"})

        assert isinstance(config, AIResponseConfig)
        assert config.task == AITask.GENERATE_RESPONSE
        assert config.model == "gpt-3.5-turbo"
        assert config.output_key == "text"
        assert config.failure_policy == FailurePolicy.RETRY_THEN_ABORT

    def test_max_attempts_bounds(self) -> None:
        """Test max_attempts is bounded."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError):
            parse_node_config("action", {"action": "add_tags", "tags": ["x"], "max_attempts": 0})

    def test_unknown_kind(self) -> None:
        """Test unknown kinds raise a config error."""
        from litestar_automations.core.configs import parse_node_config
        from litestar_automations.exceptions import NodeConfigError

        with pytest.raises(NodeConfigError, match="Unknown node kind 'loop'"):
            parse_node_config("loop", {})

    def test_configs_are_frozen(self) -> None:
        """Test parsed configs cannot be mutated."""
        from pydantic import ValidationError

        from litestar_automations.core.configs import parse_node_config

        config = parse_node_config("delay", {"amount": 5})

        with pytest.raises(ValidationError):
            config.amount = 10  # type: ignore[misc,union-attr]


@pytest.mark.unit
class TestDelayConfig:
    """Tests for delay durations."""

    @pytest.mark.parametrize(
        ("amount", "unit", "expected"),
        [
            (30, "seconds", timedelta(seconds=30)),
            (10, "minutes", timedelta(minutes=10)),
            (2, "hours", timedelta(hours=2)),
            (1, "days", timedelta(days=1)),
            (1, "weeks", timedelta(weeks=1)),
        ],
    )
    def test_duration(self, amount: int, unit: str, expected: timedelta) -> None:
        """Test every unit converts to the right duration."""
        from litestar_automations.core.configs import DelayConfig

        assert DelayConfig(amount=amount, unit=unit).duration == expected  # type: ignore[arg-type]

    def test_default_unit_is_minutes(self) -> None:
        """Test the default unit."""
        from litestar_automations.core.configs import DelayConfig

        assert DelayConfig(amount=3).duration == timedelta(minutes=3)
