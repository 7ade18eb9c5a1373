"""Unit tests for the deployment event bus."""

import json

import pytest

from buildcart.core.events import Event, EventBus
from buildcart.models.deployment import Deployment


class TestEventBus:
    """Tests for EventBus."""

    @pytest.fixture
    def deployment(self) -> Deployment:
        return Deployment(store_id="store-1", version="v1")

    @pytest.mark.asyncio
    async def test_every_subscriber_receives_events(self, deployment: Deployment):
        bus = EventBus()
        first = bus.subscribe("store-1")
        second = bus.subscribe("store-1")

        await bus.publish_deployment_started(deployment)

        assert first.get_nowait().event_type == "deployment_started"
        assert second.get_nowait().event_type == "deployment_started"

    @pytest.mark.asyncio
    async def test_events_are_scoped_to_store(self, deployment: Deployment):
        bus = EventBus()
        other = bus.subscribe("store-2")

        await bus.publish_deployment_failed(deployment, "boom")

        assert other.empty()

    def test_unsubscribe(self):
        bus = EventBus()
        queue = bus.subscribe("store-1")

        bus.unsubscribe("store-1", queue)

        assert bus.subscriber_count("store-1") == 0

    def test_sse_format(self):
        event = Event(event_type="deployment_failed", data={"error": "boom"})

        lines = event.to_sse().split("\n")

        assert lines[0] == "event: deployment_failed"
        payload = json.loads(lines[1].removeprefix("data: "))
        assert payload["error"] == "boom"
        assert "timestamp" in payload
