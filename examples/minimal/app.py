"""Minimal example of litestar-automations integration.

This example runs the AutomationsPlugin with an in-memory engine and a
keyword auto-reply workflow: inbound messages mentioning "price" get a
pricing answer, everything else gets a generic acknowledgement.

Run with:
    cd examples/minimal
    litestar run

Or:
    uvicorn app:app --reload
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from litestar import Controller, Litestar, get, post

from litestar_automations import ActionDispatcher, Scheduler, TriggerEvent, WorkflowDefinition
from litestar_automations.actions.adapters import OutboundMessage
from litestar_automations.engine.registry import DefinitionRegistry
from litestar_automations.logging import get_logger
from litestar_automations.plugin import AutomationsPlugin, AutomationsPluginConfig

logger = get_logger(__name__)


# =============================================================================
# Adapters
# =============================================================================


class LoggingMessageSender:
    """Message sender that logs instead of delivering, and keeps an outbox."""

    def __init__(self) -> None:
        self.outbox: list[dict[str, Any]] = []

    async def send(self, message: OutboundMessage, *, idempotency_key: str, timeout: float) -> dict[str, Any]:
        message_id = f"msg_{uuid4().hex[:12]}"
        self.outbox.append({"id": message_id, "contact_id": message.contact_id, "text": message.text})
        logger.info("example.message_sent", message_id=message_id, contact_id=message.contact_id, text=message.text)
        return {"message_id": message_id}


# =============================================================================
# Workflow Definition
# =============================================================================

PRICING_REPLY = WorkflowDefinition.from_dict(
    {
        "id": "wf_pricing_reply",
        "organization_id": "org_demo",
        "name": "Pricing auto-reply",
        "description": "Answer pricing questions and acknowledge everything else",
        "enabled": True,
        "settings": {"allow_reentry": True, "max_executions_per_contact": None},
        "nodes": [
            {"id": "start", "kind": "trigger", "config": {"event_type": "message_received"}},
            {
                "id": "asks_price",
                "kind": "condition",
                "config": {"rules": [{"field": "text", "operator": "contains", "value": "price"}]},
            },
            {
                "id": "send_pricing",
                "kind": "action",
                "config": {"action": "send_message", "text": "Hi {{contact.name}}, plans start at $29/month."},
            },
            {
                "id": "send_ack",
                "kind": "action",
                "config": {"action": "send_message", "text": "Thanks {{contact.name}}, an agent will reply soon."},
            },
        ],
        "edges": [
            {"source": "start", "target": "asks_price"},
            {"source": "asks_price", "target": "send_pricing", "label": "true"},
            {"source": "asks_price", "target": "send_ack", "label": "false"},
        ],
    }
)


# =============================================================================
# API Controller
# =============================================================================


class AutomationController(Controller):
    """REST API for automation definitions and events."""

    path = "/automations"
    tags = ["Automations"]

    @get("/definitions")
    async def list_definitions(self, automation_definitions: DefinitionRegistry) -> list[dict[str, Any]]:
        """List the latest version of every stored definition."""
        return [
            {"id": d.id, "version": d.version, "name": d.name, "enabled": d.enabled, "nodes": d.node_count}
            for d in automation_definitions.list_definitions()
        ]

    @post("/events")
    async def receive_event(self, data: dict[str, Any], automation_scheduler: Scheduler) -> dict[str, Any]:
        """Accept a business event and start every matching workflow."""
        event = TriggerEvent(
            type=data["type"],
            organization_id=data["organization_id"],
            payload=data.get("payload", {}),
        )
        executions = await automation_scheduler.submit(event)
        return {"executions": [str(execution.id) for execution in executions]}

    @get("/executions/{execution_id:uuid}")
    async def get_execution(self, execution_id: UUID, automation_scheduler: Scheduler) -> dict[str, Any]:
        """Get the state of one execution."""
        execution = await automation_scheduler.get_execution(execution_id)
        return {
            "id": str(execution.id),
            "workflow_id": execution.workflow_id,
            "status": str(execution.status),
            "path": execution.path,
            "error": execution.error.message if execution.error else None,
        }

    @post("/executions/{execution_id:uuid}/cancel")
    async def cancel_execution(self, execution_id: UUID, automation_scheduler: Scheduler) -> dict[str, Any]:
        """Request cancellation of an execution."""
        execution = await automation_scheduler.cancel(execution_id)
        return {"id": str(execution.id), "status": str(execution.status)}


# =============================================================================
# Application
# =============================================================================

sender = LoggingMessageSender()
definitions = DefinitionRegistry()


async def register_definitions() -> None:
    await definitions.save_definition(PRICING_REPLY)


plugin_config = AutomationsPluginConfig(
    definitions=definitions,
    dispatcher=ActionDispatcher(messages=sender),
    configure_logging=True,
    json_logs=False,
)

app = Litestar(
    route_handlers=[AutomationController],
    plugins=[AutomationsPlugin(config=plugin_config)],
    on_startup=[register_definitions],
    debug=True,
)


# =============================================================================
# Health Check (for testing)
# =============================================================================


@get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


app.register(health_check)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
