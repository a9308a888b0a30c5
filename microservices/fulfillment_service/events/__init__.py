"""
Fulfillment Service Events Module

Exports all event-related functionality for fulfillment service
"""

from .models import (
    FulfillmentEventType,
    FulfillmentSubscribedEventType,
    FulfillmentStreamConfig,
    JobCreatedEvent,
    JobShippedEvent,
    JobFailedEvent,
    OrderDeliveredEvent,
)

from .publishers import (
    publish_job_created,
    publish_job_shipped,
    publish_job_failed,
    publish_order_delivered,
)

from .handlers import get_event_handlers

__all__ = [
    # Event Types
    "FulfillmentEventType",
    "FulfillmentSubscribedEventType",
    "FulfillmentStreamConfig",
    # Event Models
    "JobCreatedEvent",
    "JobShippedEvent",
    "JobFailedEvent",
    "OrderDeliveredEvent",
    # Publishers
    "publish_job_created",
    "publish_job_shipped",
    "publish_job_failed",
    "publish_order_delivered",
    # Handlers
    "get_event_handlers",
]
