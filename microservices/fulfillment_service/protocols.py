"""
Fulfillment Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from datetime import datetime

# Import only models (no I/O dependencies)
from .models import (
    FraudCheck,
    FulfillmentJob,
    FulfillmentType,
    JobStatus,
    Order,
    Product,
    Shipment,
    Supplier,
    SupplierOffer,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class FulfillmentServiceError(Exception):
    """Base exception for fulfillment service errors"""
    pass


class OrderNotFoundError(FulfillmentServiceError):
    """Order not found error"""
    pass


class JobNotFoundError(FulfillmentServiceError):
    """Fulfillment job not found error"""
    pass


class NoValidProductsError(FulfillmentServiceError):
    """None of the order items resolved to a known product"""
    pass


class FraudBlockedError(FulfillmentServiceError):
    """Fraud gate blocked the order"""
    pass


class AdapterError(FulfillmentServiceError):
    """Supplier call failed: timeout, HTTP failure or malformed response"""
    pass


class MaxRetriesExceededError(FulfillmentServiceError):
    """Job exhausted its retry budget"""
    pass


# ============================================================================
# Repository Protocols
# ============================================================================

@runtime_checkable
class FulfillmentRepositoryProtocol(Protocol):
    """
    Interface for Fulfillment Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.
    """

    # Orders / products

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order with its line items"""
        ...

    async def update_order_status(
        self, order_id: str, status: str, delivered_at: Optional[datetime] = None
    ) -> bool:
        """Update order status (and delivered_at when given); False when nothing changed"""
        ...

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID"""
        ...

    # Jobs

    async def create_job(
        self,
        order_id: str,
        store_id: Optional[str],
        fulfillment_type: FulfillmentType,
        items: List[Dict[str, Any]],
        max_retries: int = 3,
    ) -> FulfillmentJob:
        """Persist a queued fulfillment job, or return the existing job of that type"""
        ...

    async def get_job(self, job_id: str) -> Optional[FulfillmentJob]:
        """Get job by ID"""
        ...

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        order_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[FulfillmentJob]:
        """List jobs, newest first"""
        ...

    async def get_jobs_for_order(self, order_id: str) -> List[FulfillmentJob]:
        """All jobs of an order"""
        ...

    async def claim_job(self, job_id: str, now: datetime) -> Optional[FulfillmentJob]:
        """
        Move a claimable job to processing.

        Only queued jobs, or retrying jobs whose next_retry_at <= now, are
        claimed. Returns None when nothing was claimed.
        """
        ...

    async def update_job(
        self, job_id: str, expected_status: Optional[JobStatus] = None, **fields: Any
    ) -> Optional[FulfillmentJob]:
        """Update job columns, only while the job has expected_status when given"""
        ...

    async def get_trackable_jobs(self) -> List[FulfillmentJob]:
        """Shipped jobs that carry a supplier order id"""
        ...

    async def get_due_jobs(
        self, now: datetime, queued_before: datetime, limit: int = 100
    ) -> List[FulfillmentJob]:
        """Retrying jobs whose next_retry_at has passed, and queued jobs
        created before queued_before (lost dispatches)"""
        ...

    async def get_stalled_jobs(self, updated_before: datetime, limit: int = 100) -> List[FulfillmentJob]:
        """Processing jobs without a supplier order, untouched since updated_before"""
        ...

    async def log_fulfillment_error(
        self, job_id: str, error_type: str, error_message: str, retry_attempt: int
    ) -> None:
        """Append a fulfillment error record"""
        ...

    # Fraud checks

    async def get_fraud_check(self, order_id: str) -> Optional[FraudCheck]:
        """Get stored fraud check for an order"""
        ...

    async def create_fraud_check(self, check: FraudCheck) -> FraudCheck:
        """Insert if absent; returns the stored check"""
        ...

    # Shipments

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        """Create a shipment record"""
        ...

    async def upsert_shipment(self, shipment: Shipment) -> Shipment:
        """Upsert by (order_id, tracking_number); delivered_at is set once"""
        ...

    async def get_shipments_for_order(self, order_id: str) -> List[Shipment]:
        """Shipments of an order"""
        ...


@runtime_checkable
class SupplierRepositoryProtocol(Protocol):
    """Interface for supplier and supplier offer lookups"""

    async def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        """Get supplier by ID"""
        ...

    async def get_supplier_offers(self, product_id: str) -> List[SupplierOffer]:
        """Available offers for a product, joined with their supplier"""
        ...


# ============================================================================
# Infrastructure Protocols
# ============================================================================

@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event"""
        ...


@runtime_checkable
class JobQueueProtocol(Protocol):
    """
    At-least-once dispatch of process_fulfillment_job.

    enqueue() must not block on job execution.
    """

    async def enqueue(self, job_id: str, delay_seconds: float = 0) -> None:
        """Schedule processing of a job"""
        ...
