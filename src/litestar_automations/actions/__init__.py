"""Side effects performed by action and AI nodes.

This module exports the action dispatcher, its adapter interfaces and the default
HTTP adapters.
"""

from __future__ import annotations

from litestar_automations.actions.adapters import (
    AIClient,
    AIRequest,
    ContactClient,
    ContactMutation,
    HttpWebhookClient,
    MessageSender,
    OpenAICompatibleClient,
    OutboundMessage,
    WebhookClient,
    WebhookRequest,
    WebhookResponse,
)
from litestar_automations.actions.dispatcher import ActionCall, ActionDispatcher
from litestar_automations.actions.idempotency import InMemoryIdempotencyStore, idempotency_key
from litestar_automations.actions.templates import render, render_value

__all__ = [
    "AIClient",
    "AIRequest",
    "ActionCall",
    "ActionDispatcher",
    "ContactClient",
    "ContactMutation",
    "HttpWebhookClient",
    "InMemoryIdempotencyStore",
    "MessageSender",
    "OpenAICompatibleClient",
    "OutboundMessage",
    "WebhookClient",
    "WebhookRequest",
    "WebhookResponse",
    "idempotency_key",
    "render",
    "render_value",
]
