"""
Fulfillment Service Event Publishers

Functions to publish events from fulfillment service
"""

import logging
from typing import Optional, Dict, Any, List
from datetime import datetime

from core.nats_client import Event
from .models import (
    FulfillmentEventType,
    JobCreatedEvent,
    JobShippedEvent,
    JobFailedEvent,
    OrderDeliveredEvent,
)

logger = logging.getLogger(__name__)

SOURCE = "fulfillment_service"


async def publish_job_created(
    event_bus,
    order_id: str,
    job_ids: List[str],
    fulfillment_types: Optional[List[str]] = None,
    store_id: Optional[str] = None,
    fraud_status: Optional[str] = None,
) -> bool:
    """Publish fulfillment.job.created event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping fulfillment.job.created event")
        return False

    try:
        event_data = JobCreatedEvent(
            order_id=order_id,
            store_id=store_id,
            job_ids=job_ids,
            fulfillment_types=fulfillment_types or [],
            fraud_status=fraud_status,
        )

        event = Event(
            event_type=FulfillmentEventType.JOB_CREATED.value,
            source=SOURCE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.warning(f"Event bus rejected fulfillment.job.created event for order {order_id}")
            return False

        logger.info(f"Published fulfillment.job.created event for order {order_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish fulfillment.job.created event: {e}")
        return False


async def publish_job_shipped(
    event_bus,
    job_id: str,
    order_id: str,
    supplier_id: Optional[str] = None,
    tracking_number: Optional[str] = None,
    carrier: Optional[str] = None,
    estimated_delivery_date: Optional[datetime] = None,
) -> bool:
    """Publish fulfillment.job.shipped event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping fulfillment.job.shipped event")
        return False

    try:
        event_data = JobShippedEvent(
            job_id=job_id,
            order_id=order_id,
            supplier_id=supplier_id,
            tracking_number=tracking_number,
            carrier=carrier,
            estimated_delivery_date=estimated_delivery_date,
        )

        event = Event(
            event_type=FulfillmentEventType.JOB_SHIPPED.value,
            source=SOURCE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.warning(f"Event bus rejected fulfillment.job.shipped event for job {job_id}")
            return False

        logger.info(f"Published fulfillment.job.shipped event for job {job_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish fulfillment.job.shipped event: {e}")
        return False


async def publish_job_failed(
    event_bus,
    job_id: str,
    order_id: str,
    fulfillment_type: str,
    retry_count: int,
    error_message: str,
) -> bool:
    """Publish fulfillment.job.failed event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping fulfillment.job.failed event")
        return False

    try:
        event_data = JobFailedEvent(
            job_id=job_id,
            order_id=order_id,
            fulfillment_type=fulfillment_type,
            retry_count=retry_count,
            error_message=error_message,
        )

        event = Event(
            event_type=FulfillmentEventType.JOB_FAILED.value,
            source=SOURCE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.warning(f"Event bus rejected fulfillment.job.failed event for job {job_id}")
            return False

        logger.info(f"Published fulfillment.job.failed event for job {job_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish fulfillment.job.failed event: {e}")
        return False


async def publish_order_delivered(
    event_bus,
    order_id: str,
    delivered_at: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """Publish fulfillment.order.delivered event"""
    if not event_bus:
        logger.warning("Event bus not available, skipping fulfillment.order.delivered event")
        return False

    try:
        event_data = OrderDeliveredEvent(
            order_id=order_id,
            delivered_at=delivered_at,
            metadata=metadata or {},
        )

        event = Event(
            event_type=FulfillmentEventType.ORDER_DELIVERED.value,
            source=SOURCE,
            data=event_data.model_dump(mode='json')
        )

        if not await event_bus.publish_event(event):
            logger.warning(f"Event bus rejected fulfillment.order.delivered event for order {order_id}")
            return False

        logger.info(f"Published fulfillment.order.delivered event for order {order_id}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish fulfillment.order.delivered event: {e}")
        return False
