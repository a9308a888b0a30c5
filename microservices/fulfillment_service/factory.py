"""
Fulfillment Service Factory

Factory for creating FulfillmentService with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config import FulfillmentConfig, get_settings
from core.postgres_client import PostgresClientWrapper

from .fulfillment_repository import FulfillmentRepository
from .fulfillment_service import FulfillmentService
from .job_queue import InProcessJobQueue, NATSJobQueue
from .protocols import JobQueueProtocol
from .tracking_sync import TrackingSyncService

logger = logging.getLogger(__name__)


def create_repository(config: FulfillmentConfig) -> FulfillmentRepository:
    infra = config.infrastructure
    db = PostgresClientWrapper(
        service_name=config.service_name,
        host=infra.postgres_host,
        port=infra.postgres_port,
        database=infra.postgres_db,
        username=infra.postgres_user,
        password=infra.postgres_password,
        min_size=infra.postgres_min_pool,
        max_size=infra.postgres_max_pool,
    )
    return FulfillmentRepository(db=db, schema=config.db_schema)


def create_fulfillment_service(
    config: Optional[FulfillmentConfig] = None,
    event_bus=None,
    job_queue: Optional[JobQueueProtocol] = None,
) -> FulfillmentService:
    """
    Create FulfillmentService with all real dependencies

    Args:
        config: Optional config (uses global settings if not provided)
        event_bus: Optional event bus for event publishing
        job_queue: Optional dispatch; NATS when an event bus is available,
            in-process otherwise

    Returns:
        Fully initialized FulfillmentService instance
    """
    if config is None:
        config = get_settings()

    repository = create_repository(config)

    if job_queue is None:
        job_queue = NATSJobQueue(event_bus) if event_bus else InProcessJobQueue()

    service = FulfillmentService(
        repository=repository,
        event_bus=event_bus,
        job_queue=job_queue,
        config=config,
    )

    if isinstance(job_queue, InProcessJobQueue):
        job_queue.set_handler(service.process_fulfillment_job)

    logger.info(f"FulfillmentService created with real dependencies ({type(job_queue).__name__})")
    return service


def create_tracking_sync_service(
    fulfillment_service: FulfillmentService,
    config: Optional[FulfillmentConfig] = None,
) -> TrackingSyncService:
    """Tracking sync sharing the service's repository and adapter cache"""
    return TrackingSyncService(
        repository=fulfillment_service.repository,
        adapter_registry=fulfillment_service.adapter_registry,
        event_bus=fulfillment_service.event_bus,
        config=config or fulfillment_service.config,
    )


__all__ = ["create_fulfillment_service", "create_tracking_sync_service", "create_repository"]
