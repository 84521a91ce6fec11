"""Integration tests for the example application.

Tests the minimal example app using Litestar's test client to verify
end-to-end functionality.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from litestar.testing import AsyncTestClient


async def wait_for_status(
    client: AsyncTestClient,
    execution_id: str,
    expected_statuses: list[str],
    timeout: float = 5.0,
    poll_interval: float = 0.05,
) -> dict[str, Any]:
    """Poll execution status until it reaches an expected state or timeout.

    Args:
        client: Test client to use.
        execution_id: Execution ID to check.
        expected_statuses: List of acceptable final statuses.
        timeout: Maximum time to wait in seconds.
        poll_interval: Time between polls in seconds.

    Returns:
        Execution data dict.
    """
    elapsed = 0.0
    while True:
        response = await client.get(f"/automations/executions/{execution_id}")
        data = response.json()
        if data["status"] in expected_statuses or elapsed >= timeout:
            return data
        await asyncio.sleep(poll_interval)
        elapsed += poll_interval


# =============================================================================
# Minimal App Tests
# =============================================================================


@pytest.mark.integration
class TestMinimalApp:
    """Integration tests for the minimal example app."""

    @pytest.fixture
    def minimal_app(self):
        """Import and return the minimal example app."""
        from examples.minimal.app import app

        return app

    async def test_health_check(self, minimal_app) -> None:
        """Test health check endpoint."""
        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.get("/health")

            assert response.status_code == 200
            assert response.json()["status"] == "healthy"

    async def test_definition_registered_on_startup(self, minimal_app) -> None:
        """Test the pricing workflow is stored when the app starts."""
        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.get("/automations/definitions")

            assert response.status_code == 200
            pricing = next(d for d in response.json() if d["id"] == "wf_pricing_reply")
            assert pricing["enabled"] is True
            assert pricing["nodes"] == 4

    @pytest.mark.parametrize(
        ("text", "branch", "reply"),
        [
            ("what is the price?", "send_pricing", "Hi Ada, plans start at $29/month."),
            ("hello there", "send_ack", "Thanks Ada, an agent will reply soon."),
        ],
    )
    async def test_message_takes_branch(self, minimal_app, text: str, branch: str, reply: str) -> None:
        """Test an inbound message follows the branch chosen by its text."""
        from examples.minimal.app import sender

        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.post(
                "/automations/events",
                json={
                    "type": "message_received",
                    "organization_id": "org_demo",
                    "payload": {"text": text, "contact": {"id": "c_ada", "name": "Ada"}},
                },
            )

            assert response.status_code == 201
            [execution_id] = response.json()["executions"]

            data = await wait_for_status(client, execution_id, ["completed", "failed"])
            assert data["status"] == "completed"
            assert data["path"] == ["start", "asks_price", branch]
            assert data["error"] is None

        assert sender.outbox[-1]["text"] == reply
        assert sender.outbox[-1]["contact_id"] == "c_ada"

    async def test_other_organization_starts_nothing(self, minimal_app) -> None:
        """Test events from another organization match no workflow."""
        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.post(
                "/automations/events",
                json={"type": "message_received", "organization_id": "org_other", "payload": {"text": "price"}},
            )

            assert response.status_code == 201
            assert response.json() == {"executions": []}

    async def test_cancel_finished_execution(self, minimal_app) -> None:
        """Test cancelling a finished execution leaves it unchanged."""
        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.post(
                "/automations/events",
                json={
                    "type": "message_received",
                    "organization_id": "org_demo",
                    "payload": {"text": "hi", "contact": {"id": "c_bo", "name": "Bo"}},
                },
            )
            [execution_id] = response.json()["executions"]
            await wait_for_status(client, execution_id, ["completed"])

            cancelled = await client.post(f"/automations/executions/{execution_id}/cancel")

            assert cancelled.status_code == 201
            assert cancelled.json()["status"] == "completed"
