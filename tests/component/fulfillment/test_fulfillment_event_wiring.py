"""
Component Tests for event handlers, publishers and job queues
"""

import asyncio
from datetime import datetime

import pytest

from core.nats_client import Event
from microservices.fulfillment_service.events import get_event_handlers, publish_job_created, publish_order_delivered
from microservices.fulfillment_service.job_queue import InProcessJobQueue, NATSJobQueue
from microservices.fulfillment_service.models import JobStatus
from tests.component.mocks import MockEventBus

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


class TestEventHandlers:

    async def test_handler_patterns(self, fulfillment_service):
        handlers = get_event_handlers(fulfillment_service)

        assert set(handlers) == {"payment.completed", "fulfillment.job.process"}

    async def test_payment_completed_creates_jobs(self, fulfillment_service, repository, event_bus):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}])
        for pattern, handler in get_event_handlers(fulfillment_service).items():
            await event_bus.subscribe_to_events(pattern, handler)

        await event_bus.simulate_event("payment.completed", {"order_id": "order_1", "store_id": "store_1"})

        assert len(repository.jobs) == 1

    async def test_payment_completed_reads_metadata(self, fulfillment_service, repository, event_bus):
        repository.add_product("prod_mug", "dropship")
        repository.add_order(items=[{"product_id": "prod_mug"}])
        for pattern, handler in get_event_handlers(fulfillment_service).items():
            await event_bus.subscribe_to_events(pattern, handler)

        await event_bus.simulate_event("payment.completed", {"metadata": {"order_id": "order_1"}})

        assert len(repository.jobs) == 1

    async def test_payment_without_order_id_is_ignored(self, fulfillment_service, repository, event_bus):
        for pattern, handler in get_event_handlers(fulfillment_service).items():
            await event_bus.subscribe_to_events(pattern, handler)

        await event_bus.simulate_event("payment.completed", {"amount": 100})

        assert repository.jobs == {}

    async def test_job_process_event_processes_job(self, fulfillment_service, repository, event_bus):
        job = repository.put_job(fulfillment_type="manual")
        repository.add_order()
        for pattern, handler in get_event_handlers(fulfillment_service).items():
            await event_bus.subscribe_to_events(pattern, handler)

        await event_bus.simulate_event("fulfillment.job.process", {"job_id": job.id})

        assert repository.jobs[job.id].status == JobStatus.PROCESSING
        assert repository.jobs[job.id].supplier_order_id.startswith("MANUAL-")


class TestPublishers:

    async def test_publish_without_bus(self):
        assert await publish_job_created(None, order_id="order_1", job_ids=["job_1"]) is False

    async def test_publish_swallows_bus_errors(self):
        bus = MockEventBus()
        bus.set_error(RuntimeError("nats down"))

        assert await publish_job_created(bus, order_id="order_1", job_ids=["job_1"]) is False

    async def test_publish_reports_rejected_event(self):
        bus = MockEventBus()
        bus.set_publish_result(False)

        assert await publish_job_created(bus, order_id="order_1", job_ids=["job_1"]) is False
        assert await publish_order_delivered(bus, order_id="order_1", delivered_at=datetime(2026, 5, 1)) is False
        bus.assert_no_events_published()

    async def test_publish_event_shape(self):
        bus = MockEventBus()

        assert await publish_job_created(bus, order_id="order_1", job_ids=["job_1"], store_id="store_1") is True

        event = bus.assert_event_published("fulfillment.job.created")
        assert event["source"] == "fulfillment_service"
        assert event["data"]["job_ids"] == ["job_1"]
        assert isinstance(event["data"]["timestamp"], str)


class TestInProcessJobQueue:

    async def test_runs_handler(self):
        processed = []

        async def handler(job_id):
            processed.append(job_id)

        queue = InProcessJobQueue(handler)
        await queue.enqueue("job_1")
        await queue.drain()

        assert processed == ["job_1"]
        assert queue.pending == 0

    async def test_handler_errors_are_contained(self):
        async def handler(job_id):
            raise RuntimeError("boom")

        queue = InProcessJobQueue(handler)
        await queue.enqueue("job_1")
        await queue.drain()

        assert queue.pending == 0

    async def test_close_cancels_delayed_jobs(self):
        processed = []

        async def handler(job_id):
            processed.append(job_id)

        queue = InProcessJobQueue(handler)
        await queue.enqueue("job_1", delay_seconds=60)
        await asyncio.sleep(0)
        await queue.close()

        assert processed == []
        assert queue.pending == 0

    async def test_requires_handler(self):
        with pytest.raises(RuntimeError):
            await InProcessJobQueue().enqueue("job_1")


class TestNATSJobQueue:

    async def test_publishes_process_event(self):
        bus = MockEventBus()

        await NATSJobQueue(bus).enqueue("job_1")

        bus.assert_event_published("fulfillment.job.process", {"job_id": "job_1"})

    async def test_delayed_dispatch_is_left_to_sweep(self):
        bus = MockEventBus()

        await NATSJobQueue(bus).enqueue("job_1", delay_seconds=600)

        bus.assert_no_events_published()

    async def test_event_round_trip(self):
        event = Event(event_type="fulfillment.job.process", source="fulfillment_service", data={"job_id": "job_1"})

        restored = Event.from_dict(event.to_dict())

        assert restored.type == "fulfillment.job.process"
        assert restored.data == {"job_id": "job_1"}
