"""Action adapter interfaces and HTTP implementations.

The dispatcher talks to external systems through four narrow, stateless
interfaces. Each exposes a single call that receives the idempotency key of the
side effect and a timeout in seconds.

Message sending and contact mutation belong to the host application (channel
senders, tenant data store) and have no default implementation. Webhooks and AI
generation ship with :mod:`httpx` based clients.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

import httpx

__all__ = [
    "AIClient",
    "AIRequest",
    "ContactClient",
    "ContactMutation",
    "HttpWebhookClient",
    "MessageSender",
    "OpenAICompatibleClient",
    "OutboundMessage",
    "WebhookClient",
    "WebhookRequest",
    "WebhookResponse",
]

IDEMPOTENCY_HEADER = "Idempotency-Key"


@dataclass
class OutboundMessage:
    """A message to deliver to a contact."""

    organization_id: str
    contact_id: str | None
    channel: str
    to: str | None = None
    template_id: str | None = None
    text: str | None = None
    variables: dict[str, str] = field(default_factory=dict)


@dataclass
class ContactMutation:
    """A change to apply to a contact or its conversation.

    Attributes:
        organization_id: Owning organization.
        contact_id: The contact to change.
        operation: Kind of change.
        field_name: Field name for ``update_field``.
        value: New value for ``update_field``.
        tags: Tags for ``add_tags`` and ``remove_tags``.
        agent_id: Agent for ``assign_agent``.
        team_id: Team for ``assign_agent`` when no agent is given.
    """

    organization_id: str
    contact_id: str | None
    operation: Literal["update_field", "add_tags", "remove_tags", "assign_agent"]
    field_name: str | None = None
    value: Any = None
    tags: list[str] = field(default_factory=list)
    agent_id: str | None = None
    team_id: str | None = None


@dataclass
class WebhookRequest:
    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None


@dataclass
class WebhookResponse:
    status_code: int
    body: Any = None


@dataclass
class AIRequest:
    """A text-generation request.

    Attributes:
        prompt: Rendered user prompt.
        system_prompt: Optional system message.
        model: Model identifier.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens.
    """

    prompt: str
    system_prompt: str | None = None
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    max_tokens: int = 500


@runtime_checkable
class MessageSender(Protocol):
    async def send(self, message: OutboundMessage, *, idempotency_key: str, timeout: float) -> dict[str, Any]:
        """Deliver ``message`` and return provider details, e.g. ``{"message_id": ...}``."""
        ...


@runtime_checkable
class ContactClient(Protocol):
    async def mutate(self, mutation: ContactMutation, *, idempotency_key: str, timeout: float) -> dict[str, Any]:
        """Apply ``mutation`` and return the resulting values."""
        ...


@runtime_checkable
class WebhookClient(Protocol):
    async def call(self, request: WebhookRequest, *, idempotency_key: str, timeout: float) -> WebhookResponse:
        """Perform the request. Non-2xx responses raise."""
        ...


@runtime_checkable
class AIClient(Protocol):
    async def generate(self, request: AIRequest, *, idempotency_key: str, timeout: float) -> str:
        """Return the generated text."""
        ...


class HttpWebhookClient:
    """Outbound webhook client built on :class:`httpx.AsyncClient`.

    The idempotency key is sent in the ``Idempotency-Key`` header so receivers can
    drop duplicate deliveries.

    Example:
        >>> client = HttpWebhookClient()
        >>> response = await client.call(
        ...     WebhookRequest(url="https://hooks.example.com/lead", body={"id": 1}),
        ...     idempotency_key="exec:node",
        ...     timeout=10,
        ... )
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient()

    async def call(self, request: WebhookRequest, *, idempotency_key: str, timeout: float) -> WebhookResponse:
        headers = {**request.headers, IDEMPOTENCY_HEADER: idempotency_key}
        response = await self._client.request(
            request.method,
            request.url,
            headers=headers,
            json=request.body if request.method != "GET" else None,
            params=request.body if request.method == "GET" else None,
            timeout=timeout,
        )
        response.raise_for_status()
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return WebhookResponse(status_code=response.status_code, body=body)

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAICompatibleClient:
    """AI client for OpenAI-compatible chat-completions APIs (OpenAI, OpenRouter, ...).

    Args:
        api_key: Bearer token of the provider.
        base_url: API root, e.g. ``https://openrouter.ai/api/v1``.
        client: Optional preconfigured :class:`httpx.AsyncClient`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient()

    async def generate(self, request: AIRequest, *, idempotency_key: str, timeout: float) -> str:
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        response = await self._client.post(
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                IDEMPOTENCY_HEADER: idempotency_key,
            },
            json={
                "model": request.model,
                "messages": messages,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
            timeout=timeout,
        )
        response.raise_for_status()
        data = response.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            msg = "Malformed chat completion response"
            raise ValueError(msg) from exc
        return str(content).strip()

    async def aclose(self) -> None:
        await self._client.aclose()
