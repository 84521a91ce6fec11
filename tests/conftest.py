"""Shared test fixtures for litestar-automations test suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_automations.actions.adapters import AIRequest, ContactMutation, OutboundMessage, WebhookRequest
    from litestar_automations.actions.dispatcher import ActionDispatcher
    from litestar_automations.config import EngineConfig
    from litestar_automations.core.definition import WorkflowDefinition
    from litestar_automations.engine.registry import DefinitionRegistry
    from litestar_automations.engine.scheduler import Scheduler
    from litestar_automations.engine.store import InMemoryExecutionStore


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        self.now = self.now + (delta if delta is not None else timedelta(**kwargs))
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock shared by the engine and its in-memory collaborators."""
    return FakeClock()


@pytest.fixture
def engine_config(clock: FakeClock) -> EngineConfig:
    from litestar_automations.config import EngineConfig

    return EngineConfig(clock=clock)


# =============================================================================
# Fake adapters
# =============================================================================


class AdapterFailure(RuntimeError):
    """Provider error raised by the fake adapters."""


class FakeMessageSender:
    """Message sender recording every call.

    Args:
        fail_times: Number of initial calls that raise.
        gate: Optional event every call waits for before returning.
    """

    def __init__(self, fail_times: int = 0, gate: asyncio.Event | None = None) -> None:
        self.fail_times = fail_times
        self.gate = gate
        self.calls: list[tuple[OutboundMessage, str]] = []
        self.started = asyncio.Event()

    async def send(self, message: OutboundMessage, *, idempotency_key: str, timeout: float) -> dict[str, Any]:
        self.calls.append((message, idempotency_key))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if len(self.calls) <= self.fail_times:
            msg = "provider 503: upstream WhatsApp gateway unavailable"
            raise AdapterFailure(msg)
        return {"message_id": f"msg_{len(self.calls)}"}

    @property
    def keys(self) -> list[str]:
        return [key for _, key in self.calls]


class FakeContactClient:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[ContactMutation, str]] = []

    async def mutate(self, mutation: ContactMutation, *, idempotency_key: str, timeout: float) -> dict[str, Any]:
        self.calls.append((mutation, idempotency_key))
        if self.fail:
            msg = "contact store unavailable"
            raise AdapterFailure(msg)
        return {"operation": mutation.operation}


class FakeWebhookClient:
    def __init__(self, status_code: int = 200, body: Any = None) -> None:
        self.status_code = status_code
        self.body = body if body is not None else {"ok": True}
        self.calls: list[tuple[WebhookRequest, str]] = []

    async def call(self, request: WebhookRequest, *, idempotency_key: str, timeout: float) -> Any:
        from litestar_automations.actions.adapters import WebhookResponse

        self.calls.append((request, idempotency_key))
        return WebhookResponse(status_code=self.status_code, body=self.body)


class FakeAIClient:
    def __init__(self, reply: str = "Hello from the assistant", fail: bool = False, delay: float = 0) -> None:
        self.reply = reply
        self.fail = fail
        self.delay = delay
        self.calls: list[tuple[AIRequest, str]] = []

    async def generate(self, request: AIRequest, *, idempotency_key: str, timeout: float) -> str:
        self.calls.append((request, idempotency_key))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            msg = "openai: rate limit exceeded for org-123"
            raise AdapterFailure(msg)
        return self.reply


class RecordingEventBus:
    """Event bus keeping every emitted event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event: str, **payload: Any) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def sender() -> FakeMessageSender:
    return FakeMessageSender()


@pytest.fixture
def contacts() -> FakeContactClient:
    return FakeContactClient()


@pytest.fixture
def webhooks() -> FakeWebhookClient:
    return FakeWebhookClient()


@pytest.fixture
def ai_client() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def dispatcher(
    sender: FakeMessageSender,
    contacts: FakeContactClient,
    webhooks: FakeWebhookClient,
    ai_client: FakeAIClient,
) -> ActionDispatcher:
    """Dispatcher wired to the fake adapters."""
    from litestar_automations.actions.dispatcher import ActionDispatcher

    return ActionDispatcher(messages=sender, contacts=contacts, webhooks=webhooks, ai=ai_client)


# =============================================================================
# Definitions
# =============================================================================


def build_definition(
    nodes: list[tuple[str, str, dict[str, Any]]],
    edges: list[tuple[str, str] | tuple[str, str, str]],
    *,
    workflow_id: str = "wf_test",
    organization_id: str = "org_1",
    enabled: bool = True,
    **kwargs: Any,
) -> WorkflowDefinition:
    """Build a definition from ``(id, kind, config)`` and ``(source, target[, label])`` tuples."""
    from litestar_automations.core.definition import Edge, Node, WorkflowDefinition

    return WorkflowDefinition(
        id=workflow_id,
        organization_id=organization_id,
        name=workflow_id.replace("_", " ").title(),
        nodes=[Node(id=node_id, kind=kind, config=config) for node_id, kind, config in nodes],  # type: ignore[arg-type]
        edges=[Edge(*edge) for edge in edges],
        enabled=enabled,
        **kwargs,
    )


TRIGGER_HELLO = (
    "start",
    "trigger",
    {"event_type": "message_received"},
)


@pytest.fixture
def make_definition() -> Callable[..., WorkflowDefinition]:
    """Factory for definitions described as tuples."""
    return build_definition


@pytest.fixture
def hello_definition() -> WorkflowDefinition:
    """trigger -> condition(text contains "hello") -> send template X, otherwise send a hint."""
    return build_definition(
        nodes=[
            TRIGGER_HELLO,
            (
                "check",
                "condition",
                {"rules": [{"field": "text", "operator": "contains", "value": "hello"}]},
            ),
            ("reply", "action", {"action": "send_message", "template_id": "X"}),
            ("hint", "action", {"action": "send_message", "text": "Say hello to get started"}),
        ],
        edges=[("start", "check"), ("check", "reply", "true"), ("check", "hint", "false")],
        workflow_id="wf_hello",
    )


@pytest.fixture
def delay_definition() -> WorkflowDefinition:
    """trigger -> delay 10 minutes -> send text."""
    return build_definition(
        nodes=[
            TRIGGER_HELLO,
            ("wait", "delay", {"amount": 10, "unit": "minutes"}),
            ("follow_up", "action", {"action": "send_message", "text": "Still there, {{contact.name}}?"}),
        ],
        edges=[("start", "wait"), ("wait", "follow_up")],
        workflow_id="wf_delay",
    )


@pytest.fixture
def send_definition() -> WorkflowDefinition:
    """trigger -> send text, default failure policy."""
    return build_definition(
        nodes=[TRIGGER_HELLO, ("send", "action", {"action": "send_message", "text": "Hi!"})],
        edges=[("start", "send")],
        workflow_id="wf_send",
    )


def make_event(text: str = "hello there", organization_id: str = "org_1", **payload: Any) -> Any:
    from litestar_automations.core.models import TriggerEvent

    return TriggerEvent(
        type="message_received",  # type: ignore[arg-type]
        organization_id=organization_id,
        payload={"text": text, "contact": {"id": "c_1", "name": "Ada", "phone": "+15550100"}, **payload},
    )


@pytest.fixture
def event() -> Any:
    """A ``message_received`` event saying hello."""
    return make_event()


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def registry(clock: FakeClock) -> DefinitionRegistry:
    from litestar_automations.engine.registry import DefinitionRegistry

    return DefinitionRegistry(clock=clock)


@pytest.fixture
def execution_store() -> InMemoryExecutionStore:
    from litestar_automations.engine.store import InMemoryExecutionStore

    return InMemoryExecutionStore()


@pytest.fixture
def scheduler(
    registry: DefinitionRegistry,
    execution_store: InMemoryExecutionStore,
    dispatcher: ActionDispatcher,
    engine_config: EngineConfig,
    event_bus: RecordingEventBus,
) -> Scheduler:
    """Scheduler over in-memory stores and fake adapters."""
    from litestar_automations.engine.scheduler import Scheduler

    return Scheduler(
        definitions=registry,
        executions=execution_store,
        dispatcher=dispatcher,
        config=engine_config,
        event_bus=event_bus,
        worker_id="worker-a",
    )
