"""
Fulfillment Service Business Logic

Turns a paid order into fulfillment jobs and drives each job through the
queued -> processing -> shipped -> delivered state machine with bounded
retries.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from core.config import FulfillmentConfig

from .adapters import AdapterRegistry
from .events.publishers import publish_job_created, publish_job_failed, publish_job_shipped
from .fraud_gate import FraudGate
from .models import (
    CLAIMABLE_JOB_STATUSES,
    FraudStatus,
    FulfillmentJob,
    FulfillmentJobResult,
    FulfillmentType,
    JobStatus,
    JobSummary,
    Order,
    OrderPayload,
    OrderPayloadItem,
    OrderStatus,
    OrderSummary,
    OrderTrackingResponse,
    RetrySweepResult,
    Shipment,
    ShippingAddress,
    TrackingStatus,
)
from .order_status import aggregate_order_status, complete_order_if_delivered, public_job_status
from .protocols import (
    AdapterError,
    EventBusProtocol,
    FraudBlockedError,
    FulfillmentRepositoryProtocol,
    FulfillmentServiceError,
    JobQueueProtocol,
    MaxRetriesExceededError,
    NoValidProductsError,
    OrderNotFoundError,
    SupplierRepositoryProtocol,
)
from .supplier_scoring import SupplierScoringEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
ERROR_FRAUD_BLOCKED = "FRAUD_BLOCKED"
ERROR_NO_VALID_PRODUCTS = "NO_VALID_PRODUCTS"
ERROR_CREATE = "CREATE_ERROR"

PROCESSING_ERROR = "processing_error"


def _first_str(source: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def map_shipping_address(raw: Optional[Dict[str, Any]], default_country: str = "GE") -> ShippingAddress:
    """Normalize a free-form stored address into the supplier address shape"""
    source = raw or {}
    return ShippingAddress(
        line1=_first_str(source, "line1", "address1") or "Unknown address",
        line2=_first_str(source, "line2", "address2"),
        city=_first_str(source, "city") or "Unknown city",
        state=_first_str(source, "state"),
        postal_code=_first_str(source, "postalCode", "postal_code", "zip") or "0000",
        country=_first_str(source, "country") or default_country,
    )


def retry_delay_minutes(retry_count: int, base_minutes: int = 5) -> int:
    """Backoff before the next attempt: base * 2^retry_count"""
    return base_minutes * (2 ** retry_count)


def _reference(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


class FulfillmentService:
    """Fulfillment orchestration core business logic"""

    def __init__(
        self,
        repository: FulfillmentRepositoryProtocol,
        supplier_repository: Optional[SupplierRepositoryProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
        job_queue: Optional[JobQueueProtocol] = None,
        adapter_registry: Optional[AdapterRegistry] = None,
        scoring_engine: Optional[SupplierScoringEngine] = None,
        fraud_gate: Optional[FraudGate] = None,
        config: Optional[FulfillmentConfig] = None,
    ):
        """
        Initialize fulfillment service with injected dependencies

        Args:
            repository: Repository for orders, jobs, fraud checks and shipments
            supplier_repository: Supplier lookups (defaults to repository)
            event_bus: Optional event bus for publishing events
            job_queue: Dispatch for process_fulfillment_job
            adapter_registry: Shared supplier adapter cache
            scoring_engine: Supplier ranking
            fraud_gate: Fraud checks
            config: Service configuration
        """
        self.config = config or FulfillmentConfig()
        self.repository = repository
        self.supplier_repository = supplier_repository or repository
        self.event_bus = event_bus
        self.job_queue = job_queue
        self.adapter_registry = adapter_registry or AdapterRegistry(
            self.supplier_repository,
            timeout=self.config.retry.supplier_timeout_seconds,
        )
        self.scoring_engine = scoring_engine or SupplierScoringEngine(
            self.supplier_repository,
            weights=self.config.scoring.weights,
        )
        self.fraud_gate = fraud_gate or FraudGate(repository, self.config.fraud)

        logger.info("FulfillmentService initialized with dependency injection")

    # ====================
    # Job Creation
    # ====================

    async def create_fulfillment_job(
        self,
        order_id: str,
        store_id: Optional[str] = None,
        items: Optional[List[Any]] = None,
    ) -> FulfillmentJobResult:
        """
        Create one fulfillment job per fulfillment type in the order.

        Items default to the order's line items. Jobs already created for the
        order are returned as-is, so a redelivered payment event is harmless.
        """
        try:
            order = await self.repository.get_order(order_id)
            if not order:
                raise OrderNotFoundError("Order not found")

            existing = await self.repository.get_jobs_for_order(order_id)
            if existing:
                logger.info(f"Order {order_id} already has {len(existing)} fulfillment jobs")
                job_ids = [job.id for job in existing]
                return FulfillmentJobResult(success=True, job_id=job_ids[0], job_ids=job_ids)

            fraud_check = await self.fraud_gate.perform_fraud_check(order)
            if fraud_check.status == FraudStatus.BLOCKED:
                raise FraudBlockedError("Order flagged for fraud review")

            requested = self._requested_items(order, items)
            groups = await self._group_items_by_fulfillment_type(requested)
            if not groups:
                raise NoValidProductsError("Products not found")

            jobs: List[FulfillmentJob] = []
            for fulfillment_type, group_items in groups.items():
                job = await self.repository.create_job(
                    order_id=order_id,
                    store_id=store_id or order.store_id,
                    fulfillment_type=fulfillment_type,
                    items=group_items,
                    max_retries=self.config.retry.max_retries,
                )
                jobs.append(job)
                logger.info(f"Created {fulfillment_type.value} fulfillment job {job.id} for order {order_id}")

            job_ids = [job.id for job in jobs]
            await publish_job_created(
                self.event_bus,
                order_id=order_id,
                job_ids=job_ids,
                fulfillment_types=[job.fulfillment_type.value for job in jobs],
                store_id=store_id or order.store_id,
                fraud_status=fraud_check.status.value,
            )

            for job in jobs:
                await self._dispatch(job.id)

            return FulfillmentJobResult(success=True, job_id=job_ids[0], job_ids=job_ids)

        except OrderNotFoundError as e:
            return FulfillmentJobResult(success=False, error=str(e), error_code=ERROR_ORDER_NOT_FOUND)
        except FraudBlockedError as e:
            logger.warning(f"Order {order_id} blocked by fraud gate")
            return FulfillmentJobResult(success=False, error=str(e), error_code=ERROR_FRAUD_BLOCKED)
        except NoValidProductsError as e:
            return FulfillmentJobResult(success=False, error=str(e), error_code=ERROR_NO_VALID_PRODUCTS)
        except Exception as e:
            logger.error(f"Error creating fulfillment job for order {order_id}: {e}", exc_info=True)
            return FulfillmentJobResult(success=False, error=str(e) or "Internal error", error_code=ERROR_CREATE)

    def _requested_items(self, order: Order, items: Optional[List[Any]]) -> List[Dict[str, Any]]:
        if not items:
            return [{"product_id": i.product_id, "quantity": i.quantity} for i in order.items]

        requested = []
        for item in items:
            if hasattr(item, "model_dump"):
                item = item.model_dump()
            product_id = item.get("product_id") or item.get("productId")
            if product_id:
                requested.append({"product_id": product_id, "quantity": item.get("quantity", 1)})
        return requested

    async def _group_items_by_fulfillment_type(
        self, items: List[Dict[str, Any]]
    ) -> Dict[FulfillmentType, List[Dict[str, Any]]]:
        """Partition items by product fulfillment type, first-seen order"""
        grouped: Dict[FulfillmentType, List[Dict[str, Any]]] = {}
        for item in items:
            product = await self.repository.get_product(item["product_id"])
            if not product:
                logger.warning(f"Product {item['product_id']} not found, skipping item")
                continue

            try:
                fulfillment_type = FulfillmentType(product.fulfillment_type or FulfillmentType.MANUAL.value)
            except ValueError:
                logger.warning(
                    f"Unknown fulfillment type {product.fulfillment_type!r} for product {product.id}, using manual"
                )
                fulfillment_type = FulfillmentType.MANUAL

            grouped.setdefault(fulfillment_type, []).append(item)
        return grouped

    async def _dispatch(self, job_id: str, delay_seconds: float = 0) -> None:
        if not self.job_queue:
            logger.warning(f"No job queue configured, job {job_id} left for the retry sweep")
            return
        try:
            await self.job_queue.enqueue(job_id, delay_seconds=delay_seconds)
        except Exception as e:
            # The job stays persisted; the sweep re-dispatches it
            logger.error(f"Failed to enqueue job {job_id}: {e}")

    # ====================
    # Job Processing
    # ====================

    async def process_fulfillment_job(self, job_id: str) -> None:
        """
        Process one job. Safe to call any number of times.

        Only queued jobs, and retrying jobs whose next_retry_at has passed,
        are claimed; everything else is a no-op.
        """
        now = datetime.utcnow()
        job = await self.repository.get_job(job_id)
        if not job:
            logger.warning(f"Job not found: {job_id}")
            return

        if job.status not in CLAIMABLE_JOB_STATUSES:
            logger.debug(f"Job {job_id} is {job.status.value}, nothing to do")
            return

        if job.status == JobStatus.RETRYING and job.next_retry_at and job.next_retry_at > now:
            logger.debug(f"Job {job_id} not due until {job.next_retry_at.isoformat()}")
            return

        claimed = await self.repository.claim_job(job_id, now)
        if not claimed:
            logger.debug(f"Job {job_id} already claimed")
            return

        try:
            await self._route(claimed)
        except Exception as e:
            await self._handle_job_error(claimed, e)

    async def _route(self, job: FulfillmentJob) -> None:
        if job.fulfillment_type == FulfillmentType.DIGITAL:
            await self._handle_digital(job)
        elif job.fulfillment_type == FulfillmentType.MANUAL:
            await self._handle_manual(job)
        elif job.fulfillment_type == FulfillmentType.WAREHOUSE:
            await self._handle_warehouse(job)
        elif job.fulfillment_type == FulfillmentType.DROPSHIP:
            await self._handle_dropship(job)
        else:
            raise FulfillmentServiceError(f"Unknown fulfillment type: {job.fulfillment_type}")

    async def _call_adapter(self, call: Awaitable[T]) -> T:
        """Await a supplier call bounded by the supplier timeout"""
        timeout = self.config.retry.supplier_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise AdapterError(f"Supplier call timed out after {timeout}s") from e

    async def _handle_digital(self, job: FulfillmentJob) -> None:
        """Digital goods are delivered instantly"""
        now = datetime.utcnow()
        await self.repository.update_job(
            job.id,
            status=JobStatus.DELIVERED,
            supplier_order_id=_reference("DIGITAL"),
            processed_at=now,
        )
        try:
            await complete_order_if_delivered(self.repository, job.order_id, self.event_bus, now=now)
        except Exception as e:
            # The job stays delivered; tracking views derive order status from jobs
            logger.error(f"Failed to complete order {job.order_id} after digital job {job.id}: {e}")

    async def _handle_manual(self, job: FulfillmentJob) -> None:
        """Seller ships by hand and adds tracking later; job stays processing"""
        now = datetime.utcnow()
        await self.repository.update_job(
            job.id,
            supplier_order_id=_reference("MANUAL"),
            processed_at=now,
        )

    async def _load_order(self, job: FulfillmentJob) -> Order:
        order = await self.repository.get_order(job.order_id)
        if not order:
            raise OrderNotFoundError(f"Order {job.order_id} not found")
        return order

    def _payload_items(self, job: FulfillmentJob, order: Order) -> List[OrderPayloadItem]:
        skus = {item.product_id: item.supplier_sku for item in order.items}
        return [
            OrderPayloadItem(
                supplier_sku=skus.get(item["product_id"]) or item["product_id"],
                quantity=item.get("quantity", 1),
            )
            for item in job.items
        ]

    def _build_payload(self, job: FulfillmentJob, order: Order) -> OrderPayload:
        return OrderPayload(
            order_reference=job.order_id,
            customer_name=order.buyer_name or "Customer",
            shipping_address=map_shipping_address(order.shipping_address, self.config.default_shipping_country),
            items=self._payload_items(job, order),
            metadata={"fulfillment_job_id": job.id},
        )

    async def _handle_warehouse(self, job: FulfillmentJob) -> None:
        """Create an internal pick-pack task"""
        order = await self._load_order(job)
        adapter = self.adapter_registry.get_warehouse_adapter()

        response = await self._call_adapter(adapter.create_order(self._build_payload(job, order)))
        if not response.success:
            raise AdapterError(response.error or "Warehouse order creation failed")

        await self.repository.update_job(
            job.id,
            supplier_id=adapter.supplier.id,
            supplier_order_id=response.supplier_order_id,
            processed_at=datetime.utcnow(),
        )

    async def _handle_dropship(self, job: FulfillmentJob) -> None:
        """Route to the best-scoring supplier and place the order there"""
        order = await self._load_order(job)
        if not job.items:
            raise FulfillmentServiceError("No products in job")

        product_id = job.items[0]["product_id"]
        best = await self.scoring_engine.select_best_supplier(product_id)
        if not best:
            raise FulfillmentServiceError(f"No supplier available for product {product_id}")

        adapter = await self.adapter_registry.get_adapter(best.supplier_id)
        if not adapter:
            raise FulfillmentServiceError(f"Supplier adapter not found for {best.supplier_id}")

        response = await self._call_adapter(adapter.create_order(self._build_payload(job, order)))
        if not response.success:
            raise AdapterError(response.error or "Supplier order creation failed")

        now = datetime.utcnow()
        await self.repository.update_job(
            job.id,
            status=JobStatus.SHIPPED,
            supplier_id=best.supplier_id,
            supplier_order_id=response.supplier_order_id,
            tracking_number=response.tracking_number,
            carrier=response.carrier,
            estimated_delivery_date=response.estimated_delivery_date,
            processed_at=now,
        )

        # The supplier order exists from here on; failures below are logged, never retried
        try:
            if response.tracking_number:
                await self.repository.create_shipment(Shipment(
                    order_id=job.order_id,
                    fulfillment_job_id=job.id,
                    tracking_number=response.tracking_number,
                    carrier=response.carrier or "Unknown",
                    status=TrackingStatus.IN_TRANSIT.value,
                    shipped_at=now,
                    estimated_delivery_at=response.estimated_delivery_date,
                ))

            await self.repository.update_order_status(job.order_id, OrderStatus.SHIPPED.value)
        except Exception as e:
            logger.error(
                f"Dropship job {job.id} shipped but recording shipment for order {job.order_id} failed: {e}",
                extra={"job_id": job.id, "supplier_order_id": response.supplier_order_id},
            )

        logger.info(
            f"Dropship job {job.id} placed with {best.supplier_name} "
            f"(score={best.score}, supplier_order={response.supplier_order_id})"
        )
        await publish_job_shipped(
            self.event_bus,
            job_id=job.id,
            order_id=job.order_id,
            supplier_id=best.supplier_id,
            tracking_number=response.tracking_number,
            carrier=response.carrier,
            estimated_delivery_date=response.estimated_delivery_date,
        )

    # ====================
    # Retry Handling
    # ====================

    async def _handle_job_error(self, job: FulfillmentJob, error: Exception) -> None:
        """
        Record the failure, then schedule a retry or fail the job.

        Both transitions only apply while the job is still processing, so a
        job that already moved on (shipped, delivered) is never sent back.
        """
        retry_count = job.retry_count + 1
        message = str(error) or error.__class__.__name__

        logger.error(
            f"Fulfillment job {job.id} failed (attempt {retry_count}/{job.max_retries}): {message}",
            extra={"job_id": job.id, "attempt": retry_count, "error": message},
        )

        try:
            await self.repository.log_fulfillment_error(job.id, PROCESSING_ERROR, message, retry_count)
        except Exception as e:
            logger.error(f"Failed to record fulfillment error for job {job.id}: {e}")

        if retry_count >= job.max_retries:
            exhausted = MaxRetriesExceededError(
                f"Max retries ({job.max_retries}) exceeded: {message}"
            )
            failed = await self.repository.update_job(
                job.id,
                expected_status=JobStatus.PROCESSING,
                status=JobStatus.FAILED,
                retry_count=retry_count,
                error_message=str(exhausted),
                next_retry_at=None,
            )
            if not failed:
                logger.warning(f"Job {job.id} is no longer processing, not marking it failed")
                return
            logger.error(f"Job {job.id} failed permanently, needs operator review")
            await publish_job_failed(
                self.event_bus,
                job_id=job.id,
                order_id=job.order_id,
                fulfillment_type=job.fulfillment_type.value,
                retry_count=retry_count,
                error_message=message,
            )
            return

        delay_minutes = retry_delay_minutes(retry_count, self.config.retry.base_delay_minutes)
        next_retry_at = datetime.utcnow() + timedelta(minutes=delay_minutes)
        retrying = await self.repository.update_job(
            job.id,
            expected_status=JobStatus.PROCESSING,
            status=JobStatus.RETRYING,
            retry_count=retry_count,
            error_message=message,
            next_retry_at=next_retry_at,
        )
        if not retrying:
            logger.warning(f"Job {job.id} is no longer processing, not scheduling a retry")
            return
        logger.info(f"Job {job.id} scheduled for retry in {delay_minutes} minutes")
        await self._dispatch(job.id, delay_seconds=delay_minutes * 60)

    async def process_due_retries(self) -> RetrySweepResult:
        """
        Dispatch retrying jobs that are due and queued jobs whose dispatch was
        lost, and put jobs stuck in processing back on the retry path.
        """
        now = datetime.utcnow()
        queued_before = now - timedelta(seconds=self.config.scheduler.stale_queued_seconds)
        jobs = await self.repository.get_due_jobs(now, queued_before)

        for job in jobs:
            await self._dispatch(job.id)

        if jobs:
            logger.info(f"Retry sweep dispatched {len(jobs)} jobs")

        stalled_before = now - timedelta(seconds=self.config.scheduler.stale_processing_seconds)
        stalled = await self.repository.get_stalled_jobs(stalled_before)
        for job in stalled:
            await self._handle_job_error(job, FulfillmentServiceError("Processing stalled without a supplier order"))

        if stalled:
            logger.warning(f"Retry sweep recovered {len(stalled)} stalled jobs")
        return RetrySweepResult(
            enqueued=len(jobs),
            job_ids=[job.id for job in jobs],
            recovered=len(stalled),
            recovered_job_ids=[job.id for job in stalled],
        )

    # ====================
    # Queries
    # ====================

    async def get_job(self, job_id: str) -> Optional[FulfillmentJob]:
        return await self.repository.get_job(job_id)

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        order_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[FulfillmentJob]:
        return await self.repository.list_jobs(status=status, order_id=order_id, limit=limit, offset=offset)

    async def get_order_tracking(self, order_id: str) -> Optional[OrderTrackingResponse]:
        """Buyer-facing tracking view of an order"""
        order = await self.repository.get_order(order_id)
        if not order:
            return None

        jobs = await self.repository.get_jobs_for_order(order_id)
        shipments = await self.repository.get_shipments_for_order(order_id)

        return OrderTrackingResponse(
            order=OrderSummary(
                id=order.id,
                status=aggregate_order_status(jobs, order.status),
                delivered_at=order.delivered_at,
            ),
            shipments=shipments,
            jobs=[
                JobSummary(
                    id=job.id,
                    fulfillment_type=job.fulfillment_type,
                    status=public_job_status(job.status),
                    tracking_number=job.tracking_number,
                    carrier=job.carrier,
                    estimated_delivery_date=job.estimated_delivery_date,
                    created_at=job.created_at,
                )
                for job in jobs
            ],
        )
