"""
Component Test Fixtures for Fulfillment Service

Wires FulfillmentService and TrackingSyncService against the in-memory
repository, MockEventBus and fake supplier adapters.
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from core.config import FulfillmentConfig
from microservices.fulfillment_service.adapters import AdapterRegistry
from microservices.fulfillment_service.fulfillment_service import FulfillmentService
from microservices.fulfillment_service.tracking_sync import TrackingSyncService
from tests.component.fulfillment.mocks import (
    FakeAdapterFactory,
    MockFulfillmentRepository,
    RecordingJobQueue,
)
from tests.component.mocks import MockEventBus


@pytest.fixture
def fulfillment_config() -> FulfillmentConfig:
    """Default configuration with a short supplier timeout"""
    config = FulfillmentConfig()
    config.retry.supplier_timeout_seconds = 0.5
    return config


@pytest.fixture
def repository() -> MockFulfillmentRepository:
    return MockFulfillmentRepository()


@pytest.fixture
def event_bus() -> MockEventBus:
    return MockEventBus()


@pytest.fixture
def job_queue() -> RecordingJobQueue:
    return RecordingJobQueue()


@pytest.fixture
def adapter_factory() -> FakeAdapterFactory:
    return FakeAdapterFactory()


@pytest.fixture
def adapter_registry(repository, adapter_factory, fulfillment_config) -> AdapterRegistry:
    return AdapterRegistry(
        repository,
        timeout=fulfillment_config.retry.supplier_timeout_seconds,
        adapter_factory=adapter_factory,
    )


@pytest.fixture
def fulfillment_service(repository, event_bus, job_queue, adapter_registry, fulfillment_config) -> FulfillmentService:
    return FulfillmentService(
        repository=repository,
        event_bus=event_bus,
        job_queue=job_queue,
        adapter_registry=adapter_registry,
        config=fulfillment_config,
    )


@pytest.fixture
def tracking_sync(repository, adapter_registry, event_bus, fulfillment_config) -> TrackingSyncService:
    return TrackingSyncService(
        repository=repository,
        adapter_registry=adapter_registry,
        event_bus=event_bus,
        config=fulfillment_config,
    )


@pytest.fixture
def dropship_setup(repository, adapter_factory):
    """Order with one dropship product and two competing suppliers"""
    repository.add_product("prod_dropship", "dropship")
    repository.add_order("order_1", items=[{"product_id": "prod_dropship", "quantity": 2, "supplier_sku": "SKU-1"}])
    best = repository.add_supplier("sup_x", avg_shipping_days=3, rating=4.5, return_rate=5)
    other = repository.add_supplier("sup_y", avg_shipping_days=7, rating=3.0, return_rate=20)
    repository.add_offer("prod_dropship", "sup_x", cost_cents=1000)
    repository.add_offer("prod_dropship", "sup_y", cost_cents=800)
    return {
        "order_id": "order_1",
        "best": adapter_factory.for_supplier(best),
        "other": adapter_factory.for_supplier(other),
    }
