"""
Fulfillment Service Event Models

Pydantic models for events published by fulfillment service
"""

from pydantic import BaseModel, Field
from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime


# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class FulfillmentEventType(str, Enum):
    """
    Events published by fulfillment_service.

    Stream: fulfillment-stream
    Subjects: fulfillment.>
    """
    JOB_CREATED = "fulfillment.job.created"
    JOB_PROCESS = "fulfillment.job.process"
    JOB_SHIPPED = "fulfillment.job.shipped"
    JOB_FAILED = "fulfillment.job.failed"
    ORDER_DELIVERED = "fulfillment.order.delivered"


class FulfillmentSubscribedEventType(str, Enum):
    """Events that fulfillment_service subscribes to."""
    PAYMENT_COMPLETED = "payment.completed"
    JOB_PROCESS = "fulfillment.job.process"


class FulfillmentStreamConfig:
    """Stream configuration for fulfillment_service"""
    STREAM_NAME = "fulfillment-stream"
    SUBJECTS = ["fulfillment.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "fulfillment"


# =============================================================================
# Event Data Models
# =============================================================================

class JobCreatedEvent(BaseModel):
    """Event published when fulfillment jobs are created for a paid order"""
    order_id: str
    store_id: Optional[str] = None
    job_ids: List[str]
    fulfillment_types: List[str] = Field(default_factory=list)
    fraud_status: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class JobShippedEvent(BaseModel):
    """Event published when a supplier accepted a dropship order"""
    job_id: str
    order_id: str
    supplier_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class JobFailedEvent(BaseModel):
    """Event published when a job exhausted its retries (operator review)"""
    job_id: str
    order_id: str
    fulfillment_type: str
    retry_count: int
    error_message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class OrderDeliveredEvent(BaseModel):
    """Event published when every job of an order is delivered"""
    order_id: str
    delivered_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
