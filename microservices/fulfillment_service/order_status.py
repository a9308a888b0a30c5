"""
Order status aggregation

An order is delivered exactly when every one of its jobs is delivered.
The buyer-facing status is derived from job statuses.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .events.publishers import publish_order_delivered
from .models import FulfillmentJob, JobStatus, OrderStatus
from .protocols import FulfillmentRepositoryProtocol

logger = logging.getLogger(__name__)


def public_job_status(status: JobStatus) -> str:
    """Job status as shown to buyers; retries are not exposed"""
    if status in (JobStatus.QUEUED, JobStatus.RETRYING):
        return JobStatus.PROCESSING.value
    return status.value


def aggregate_order_status(jobs: List[FulfillmentJob], fallback: str) -> str:
    if not jobs:
        return fallback

    statuses = [job.status for job in jobs]
    if all(s == JobStatus.DELIVERED for s in statuses):
        return OrderStatus.DELIVERED.value
    if any(s in (JobStatus.SHIPPED, JobStatus.DELIVERED) for s in statuses):
        return OrderStatus.SHIPPED.value
    if all(s == JobStatus.FAILED for s in statuses):
        return OrderStatus.FAILED.value
    return OrderStatus.PROCESSING.value


async def complete_order_if_delivered(
    repository: FulfillmentRepositoryProtocol,
    order_id: str,
    event_bus=None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Mark the order delivered if all of its jobs are delivered.

    Returns True only for the call that moved the order to delivered; that
    call alone publishes fulfillment.order.delivered.
    """
    jobs = await repository.get_jobs_for_order(order_id)
    if not jobs or any(job.status != JobStatus.DELIVERED for job in jobs):
        return False

    delivered_at = now or datetime.utcnow()
    updated = await repository.update_order_status(order_id, OrderStatus.DELIVERED.value, delivered_at=delivered_at)
    if not updated:
        logger.debug(f"Order {order_id} already delivered")
        return False
    logger.info(f"Order {order_id} delivered ({len(jobs)} jobs)")

    await publish_order_delivered(
        event_bus,
        order_id=order_id,
        delivered_at=delivered_at,
        metadata={"job_count": len(jobs)},
    )
    return True
