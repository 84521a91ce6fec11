"""Action dispatcher.

One typed method per side effect. Every call is wrapped with the idempotency key
of its ``(execution, node)`` pair: an output recorded under that key is returned
without calling the adapter again, and a fresh output is recorded on success.
Adapter errors and timeouts are normalized into :class:`ActionFailedError`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from litestar_automations.actions.adapters import AIRequest, ContactMutation, OutboundMessage, WebhookRequest
from litestar_automations.actions.idempotency import InMemoryIdempotencyStore, idempotency_key
from litestar_automations.actions.templates import render, render_value
from litestar_automations.core.configs import (
    AddTagsConfig,
    AIResponseConfig,
    AssignAgentConfig,
    CallWebhookConfig,
    RemoveTagsConfig,
    SendMessageConfig,
    UpdateContactFieldConfig,
)
from litestar_automations.core.types import AITask
from litestar_automations.exceptions import ActionFailedError
from litestar_automations.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from litestar_automations.actions.adapters import AIClient, ContactClient, MessageSender, WebhookClient
    from litestar_automations.core.configs import ActionConfig
    from litestar_automations.core.context import ExecutionContext
    from litestar_automations.core.protocols import IdempotencyStore

__all__ = ["ActionCall", "ActionDispatcher"]

logger = get_logger(__name__)

_SENTIMENTS = ("positive", "negative", "neutral")


@dataclass(frozen=True)
class ActionCall:
    """Identity and limits of one dispatcher call.

    Attributes:
        execution_id: The execution performing the side effect.
        node_id: The node requesting it.
        organization_id: Owning organization.
        contact_id: Contact concerned, if any.
        attempt: Attempt number, starting at 1.
        timeout: Timeout of the adapter call, in seconds.
    """

    execution_id: UUID
    node_id: str
    organization_id: str
    contact_id: str | None = None
    attempt: int = 1
    timeout: float = 30.0

    @property
    def idempotency_key(self) -> str:
        return idempotency_key(self.execution_id, self.node_id)


class ActionDispatcher:
    """Typed gateway from the interpreter to the action adapters.

    Adapters are stateless and shared by every execution. An adapter left unset
    makes the matching action fail.

    Example:
        >>> dispatcher = ActionDispatcher(messages=whatsapp_sender, ai=OpenAICompatibleClient(api_key))
        >>> output = await dispatcher.send_message(context, config, call)
    """

    def __init__(
        self,
        messages: MessageSender | None = None,
        contacts: ContactClient | None = None,
        webhooks: WebhookClient | None = None,
        ai: AIClient | None = None,
        idempotency: IdempotencyStore | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            messages: Message-sending adapter.
            contacts: Contact-mutation adapter.
            webhooks: Webhook-calling adapter.
            ai: AI text-generation adapter.
            idempotency: Record store of completed side effects. Defaults to an
                in-memory store.
        """
        self.messages = messages
        self.contacts = contacts
        self.webhooks = webhooks
        self.ai = ai
        self.idempotency: IdempotencyStore = idempotency if idempotency is not None else InMemoryIdempotencyStore()

    async def dispatch(
        self,
        config: ActionConfig | AIResponseConfig,
        context: ExecutionContext,
        call: ActionCall,
    ) -> dict[str, Any]:
        """Route a node configuration to its typed method."""
        if isinstance(config, SendMessageConfig):
            return await self.send_message(context, config, call)
        if isinstance(config, AssignAgentConfig):
            return await self.assign_agent(context, config, call)
        if isinstance(config, UpdateContactFieldConfig):
            return await self.update_contact_field(context, config, call)
        if isinstance(config, AddTagsConfig):
            return await self.add_tags(context, config, call)
        if isinstance(config, RemoveTagsConfig):
            return await self.remove_tags(context, config, call)
        if isinstance(config, CallWebhookConfig):
            return await self.call_webhook(context, config, call)
        if isinstance(config, AIResponseConfig):
            return await self.generate_ai_response(context, config, call)
        msg = f"Unsupported action config {type(config).__name__}"
        raise TypeError(msg)

    async def send_message(
        self, context: ExecutionContext, config: SendMessageConfig, call: ActionCall
    ) -> dict[str, Any]:
        """Send a template or free-text message to the contact."""
        sender = self._require(self.messages, "send_message", call)
        recipient = config.to or ("{{contact.email}}" if config.channel == "email" else "{{contact.phone}}")
        message = OutboundMessage(
            organization_id=call.organization_id,
            contact_id=call.contact_id,
            channel=config.channel,
            to=render(recipient, context) or None,
            template_id=config.template_id,
            text=render(config.text, context) if config.text else None,
            variables={name: render(value, context) for name, value in config.variables.items()},
        )

        async def perform() -> dict[str, Any]:
            result = await sender.send(message, idempotency_key=call.idempotency_key, timeout=call.timeout)
            return {"channel": config.channel, "template_id": config.template_id, **(result or {})}

        return await self._perform("send_message", call, perform)

    async def assign_agent(
        self, context: ExecutionContext, config: AssignAgentConfig, call: ActionCall
    ) -> dict[str, Any]:
        """Assign the contact's conversation to an agent or a team."""
        mutation = ContactMutation(
            organization_id=call.organization_id,
            contact_id=call.contact_id,
            operation="assign_agent",
            agent_id=render(config.agent_id, context) if config.agent_id else None,
            team_id=config.team_id,
        )
        return await self._mutate("assign_agent", mutation, call)

    async def update_contact_field(
        self, context: ExecutionContext, config: UpdateContactFieldConfig, call: ActionCall
    ) -> dict[str, Any]:
        """Set a contact field to a possibly templated value."""
        mutation = ContactMutation(
            organization_id=call.organization_id,
            contact_id=call.contact_id,
            operation="update_field",
            field_name=config.field,
            value=render_value(config.value, context),
        )
        return await self._mutate("update_contact_field", mutation, call)

    async def add_tags(self, context: ExecutionContext, config: AddTagsConfig, call: ActionCall) -> dict[str, Any]:
        mutation = ContactMutation(
            organization_id=call.organization_id,
            contact_id=call.contact_id,
            operation="add_tags",
            tags=[render(tag, context) for tag in config.tags],
        )
        return await self._mutate("add_tags", mutation, call)

    async def remove_tags(
        self, context: ExecutionContext, config: RemoveTagsConfig, call: ActionCall
    ) -> dict[str, Any]:
        mutation = ContactMutation(
            organization_id=call.organization_id,
            contact_id=call.contact_id,
            operation="remove_tags",
            tags=[render(tag, context) for tag in config.tags],
        )
        return await self._mutate("remove_tags", mutation, call)

    async def call_webhook(
        self, context: ExecutionContext, config: CallWebhookConfig, call: ActionCall
    ) -> dict[str, Any]:
        """Call an outbound webhook with a templated body."""
        client = self._require(self.webhooks, "call_webhook", call)
        request = WebhookRequest(
            url=render(config.url, context),
            method=config.method,
            headers={name: render(value, context) for name, value in config.headers.items()},
            body=render_value(config.body, context) if config.body is not None else None,
        )

        async def perform() -> dict[str, Any]:
            response = await client.call(request, idempotency_key=call.idempotency_key, timeout=call.timeout)
            return {"status_code": response.status_code, "body": response.body}

        return await self._perform("call_webhook", call, perform)

    async def generate_ai_response(
        self, context: ExecutionContext, config: AIResponseConfig, call: ActionCall
    ) -> dict[str, Any]:
        """Generate text with the AI provider from a prompt built out of context variables.

        ``categorize`` and ``sentiment`` answers are normalized to one of the
        allowed labels when the provider's answer contains one.
        """
        client = self._require(self.ai, "generate_ai_response", call)
        request = AIRequest(
            prompt=render(config.prompt, context),
            system_prompt=_system_prompt(config, context),
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

        async def perform() -> dict[str, Any]:
            text = await client.generate(request, idempotency_key=call.idempotency_key, timeout=call.timeout)
            if config.task == AITask.CATEGORIZE:
                text = _pick_label(text, config.categories)
            elif config.task == AITask.SENTIMENT:
                text = _pick_label(text, _SENTIMENTS)
            return {config.output_key: text, "model": config.model, "task": str(config.task)}

        return await self._perform("generate_ai_response", call, perform)

    async def _mutate(self, action: str, mutation: ContactMutation, call: ActionCall) -> dict[str, Any]:
        client = self._require(self.contacts, action, call)

        async def perform() -> dict[str, Any]:
            result = await client.mutate(mutation, idempotency_key=call.idempotency_key, timeout=call.timeout)
            return dict(result or {})

        return await self._perform(action, call, perform)

    def _require(self, adapter: Any, action: str, call: ActionCall) -> Any:
        if adapter is None:
            logger.error("action.adapter_missing", action=action, node_id=call.node_id)
            raise ActionFailedError(action, attempts=call.attempt, cause=LookupError(f"no adapter for {action}"))
        return adapter

    async def _perform(
        self,
        action: str,
        call: ActionCall,
        perform: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        log = logger.bind(
            action=action,
            execution_id=str(call.execution_id),
            node_id=call.node_id,
            idempotency_key=call.idempotency_key,
            attempt=call.attempt,
        )

        recorded = await self.idempotency.get(call.idempotency_key)
        if recorded is not None:
            log.info("action.deduplicated")
            return recorded

        log.info("action.attempt")
        try:
            output = await asyncio.wait_for(perform(), timeout=call.timeout)
        except asyncio.TimeoutError as exc:
            log.warning("action.failed", reason="timeout", timeout=call.timeout)
            raise ActionFailedError(action, attempts=call.attempt, cause=exc) from exc
        except Exception as exc:
            log.warning("action.failed", reason=type(exc).__name__, exc_info=True)
            raise ActionFailedError(action, attempts=call.attempt, cause=exc) from exc

        await self.idempotency.put(call.idempotency_key, output)
        log.info("action.succeeded")
        return output


def _system_prompt(config: AIResponseConfig, context: ExecutionContext) -> str | None:
    base = render(config.system_prompt, context) if config.system_prompt else None
    if config.task == AITask.CATEGORIZE:
        instruction = (
            f"Classify the message into exactly one of these categories: {', '.join(config.categories)}. "
            "Reply with the category only."
        )
    elif config.task == AITask.SENTIMENT:
        instruction = "Classify the sentiment of the message as positive, negative or neutral. Reply with one word."
    else:
        return base
    return f"{base}\n\n{instruction}" if base else instruction


def _pick_label(text: str, labels: tuple[str, ...] | list[str]) -> str:
    answer = text.strip().casefold()
    for label in labels:
        if label.casefold() == answer:
            return label
    for label in labels:
        if label.casefold() in answer:
            return label
    return text.strip()
