"""Kind-specific node configuration schemas.

Every node kind has its own pydantic model enumerating the options it recognizes.
Action nodes are a tagged union discriminated on ``action``. Configurations are
parsed when a definition is built, so the interpreter only ever sees validated,
typed objects.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Annotated, Any, Literal, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from litestar_automations.core.types import (
    AITask,
    ConditionOperator,
    DelayUnit,
    EventType,
    FailurePolicy,
    MatchMode,
    NodeKind,
)
from litestar_automations.exceptions import NodeConfigError

__all__ = [
    "AIResponseConfig",
    "ActionConfig",
    "AddTagsConfig",
    "AssignAgentConfig",
    "CallWebhookConfig",
    "ConditionConfig",
    "ConditionRule",
    "DelayConfig",
    "NodeConfig",
    "RemoveTagsConfig",
    "SendMessageConfig",
    "TriggerConfig",
    "UpdateContactFieldConfig",
    "parse_node_config",
]

_UNIT_SECONDS = {
    DelayUnit.SECONDS: 1,
    DelayUnit.MINUTES: 60,
    DelayUnit.HOURS: 3600,
    DelayUnit.DAYS: 86400,
    DelayUnit.WEEKS: 604800,
}


class _Config(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ConditionRule(_Config):
    """A single comparison against a context or payload value.

    Attributes:
        field: Dotted path of the value to test, e.g. ``message.text``.
        operator: The comparison to apply.
        value: Right-hand operand. Unused by the emptiness operators.
    """

    field: str = Field(min_length=1)
    operator: ConditionOperator
    value: Any = None


class TriggerConfig(_Config):
    """Configuration of the trigger node.

    Attributes:
        event_type: Event type that starts the workflow.
        conditions: Sub-conditions evaluated against the event payload.
        match: How ``conditions`` are combined.
    """

    event_type: EventType
    conditions: list[ConditionRule] = Field(default_factory=list)
    match: MatchMode = MatchMode.ALL


class ConditionConfig(_Config):
    """Configuration of a condition node.

    Attributes:
        rules: Comparisons evaluated against the execution context.
        match: ``all`` requires every rule to hold, ``any`` at least one.
    """

    rules: list[ConditionRule] = Field(min_length=1)
    match: MatchMode = MatchMode.ALL


class DelayConfig(_Config):
    """Configuration of a delay node."""

    amount: int = Field(gt=0)
    unit: DelayUnit = DelayUnit.MINUTES

    @property
    def duration(self) -> timedelta:
        """The delay as a :class:`~datetime.timedelta`."""
        return timedelta(seconds=self.amount * _UNIT_SECONDS[self.unit])


class _SideEffectConfig(_Config):
    """Options shared by every node that calls an external adapter.

    Attributes:
        failure_policy: What to do once the side effect fails.
        max_attempts: Attempts allowed under ``retry_then_abort``; the engine
            default applies when unset.
        timeout_seconds: Per-call timeout; the engine default applies when unset.
    """

    failure_policy: FailurePolicy = FailurePolicy.RETRY_THEN_ABORT
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    timeout_seconds: float | None = Field(default=None, gt=0)


class SendMessageConfig(_SideEffectConfig):
    """Send a message to the contact, either from a template or as free text."""

    action: Literal["send_message"] = "send_message"
    channel: Literal["whatsapp", "email"] = "whatsapp"
    template_id: str | None = None
    text: str | None = None
    variables: dict[str, str] = Field(default_factory=dict)
    to: str | None = None

    @model_validator(mode="after")
    def _require_body(self) -> SendMessageConfig:
        if not self.template_id and not self.text:
            msg = "either template_id or text is required"
            raise ValueError(msg)
        return self


class AssignAgentConfig(_SideEffectConfig):
    """Assign the conversation to an agent or to the next agent of a team."""

    action: Literal["assign_agent"] = "assign_agent"
    agent_id: str | None = None
    team_id: str | None = None

    @model_validator(mode="after")
    def _require_target(self) -> AssignAgentConfig:
        if not self.agent_id and not self.team_id:
            msg = "either agent_id or team_id is required"
            raise ValueError(msg)
        return self


class UpdateContactFieldConfig(_SideEffectConfig):
    """Set a field on the contact. String values are rendered as templates."""

    action: Literal["update_contact_field"] = "update_contact_field"
    field: str = Field(min_length=1)
    value: Any = None


class AddTagsConfig(_SideEffectConfig):
    """Add tags to the contact."""

    action: Literal["add_tags"] = "add_tags"
    tags: list[str] = Field(min_length=1)


class RemoveTagsConfig(_SideEffectConfig):
    """Remove tags from the contact."""

    action: Literal["remove_tags"] = "remove_tags"
    tags: list[str] = Field(min_length=1)


class CallWebhookConfig(_SideEffectConfig):
    """Call an outbound HTTP webhook. String leaves of ``body`` are templated."""

    action: Literal["call_webhook"] = "call_webhook"
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] | None = None

    @field_validator("url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            msg = "url must start with http:// or https://"
            raise ValueError(msg)
        return value


class AIResponseConfig(_SideEffectConfig):
    """Generate text with the AI provider from a prompt built out of context variables.

    Attributes:
        task: What the provider is asked to do with the prompt.
        prompt: Prompt template, rendered with ``{{var}}`` substitution.
        system_prompt: Optional system message.
        categories: Allowed answers for ``categorize``.
        model: Model identifier passed to the provider.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens.
        output_key: Context key (under the node id) receiving the text.
    """

    task: AITask = AITask.GENERATE_RESPONSE
    prompt: str = Field(min_length=1)
    system_prompt: str | None = None
    categories: list[str] = Field(default_factory=list)
    model: str = "gpt-3.5-turbo"
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=500, gt=0)
    output_key: str = "text"

    @model_validator(mode="after")
    def _require_categories(self) -> AIResponseConfig:
        if self.task == AITask.CATEGORIZE and not self.categories:
            msg = "categorize requires at least one category"
            raise ValueError(msg)
        return self


ActionConfig: TypeAlias = Annotated[
    Union[
        SendMessageConfig,
        AssignAgentConfig,
        UpdateContactFieldConfig,
        AddTagsConfig,
        RemoveTagsConfig,
        CallWebhookConfig,
    ],
    Field(discriminator="action"),
]

NodeConfig: TypeAlias = Union[TriggerConfig, ConditionConfig, ActionConfig, DelayConfig, AIResponseConfig]

_ADAPTERS: dict[NodeKind, TypeAdapter[Any]] = {
    NodeKind.TRIGGER: TypeAdapter(TriggerConfig),
    NodeKind.CONDITION: TypeAdapter(ConditionConfig),
    NodeKind.ACTION: TypeAdapter(ActionConfig),
    NodeKind.DELAY: TypeAdapter(DelayConfig),
    NodeKind.AI_RESPONSE: TypeAdapter(AIResponseConfig),
}


def parse_node_config(kind: NodeKind | str, raw: Any, node_id: str | None = None) -> NodeConfig:
    """Validate a raw configuration mapping against the schema for ``kind``.

    Already-parsed configuration objects are returned as long as they belong to
    the kind.

    Args:
        kind: The node kind.
        raw: Mapping of options, or a configuration object.
        node_id: Node identifier, used in error reports.

    Returns:
        The typed configuration object.

    Raises:
        NodeConfigError: If the kind is unknown or the options do not validate.
    """
    try:
        node_kind = NodeKind(kind)
    except ValueError:
        msg = f"Unknown node kind '{kind}'"
        raise NodeConfigError(msg, node_id) from None

    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    try:
        return _ADAPTERS[node_kind].validate_python(raw if raw is not None else {})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}" for err in exc.errors()
        )
        msg = f"Invalid {node_kind} config: {details}"
        raise NodeConfigError(msg, node_id) from exc
