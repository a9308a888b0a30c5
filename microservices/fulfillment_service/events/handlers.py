"""
Fulfillment Service Event Handlers

Inbound triggers: a completed payment creates fulfillment jobs, and
fulfillment.job.process dispatches a single job.
"""

import logging
from typing import Dict, Any

from .models import FulfillmentSubscribedEventType

logger = logging.getLogger(__name__)


async def handle_payment_completed(event_data: Dict[str, Any], fulfillment_service) -> None:
    """
    Handle payment.completed event

    Create fulfillment jobs for the paid order. Redelivery is safe: jobs
    already created for the order are returned instead of duplicated.
    """
    order_id = event_data.get("order_id")
    metadata = event_data.get("metadata") or {}
    if not order_id:
        order_id = metadata.get("order_id")

    if not order_id:
        logger.warning("payment.completed event missing order_id")
        return

    store_id = event_data.get("store_id") or metadata.get("store_id")
    items = event_data.get("items") or metadata.get("items")

    logger.info(f"Processing payment.completed event for order {order_id}")

    result = await fulfillment_service.create_fulfillment_job(
        order_id=order_id,
        store_id=store_id,
        items=items,
    )

    if result.success:
        logger.info(f"Created fulfillment jobs {result.job_ids} for order {order_id}")
    else:
        logger.warning(
            f"Fulfillment not started for order {order_id}: {result.error_code} {result.error}"
        )


async def handle_job_process(event_data: Dict[str, Any], fulfillment_service) -> None:
    """Handle fulfillment.job.process event"""
    job_id = event_data.get("job_id")
    if not job_id:
        logger.warning("fulfillment.job.process event missing job_id")
        return

    await fulfillment_service.process_fulfillment_job(job_id)


def get_event_handlers(fulfillment_service) -> Dict[str, callable]:
    """
    Return a mapping of event patterns to handler functions

    This will be used in main.py to register event subscriptions.

    Args:
        fulfillment_service: FulfillmentService instance

    Returns:
        Dict mapping event patterns to handler functions
    """
    return {
        FulfillmentSubscribedEventType.PAYMENT_COMPLETED.value: lambda event: handle_payment_completed(
            event.data, fulfillment_service
        ),
        FulfillmentSubscribedEventType.JOB_PROCESS.value: lambda event: handle_job_process(
            event.data, fulfillment_service
        ),
    }
