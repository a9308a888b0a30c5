"""
Fulfillment Service Mocks

In-memory repository implementing FulfillmentRepositoryProtocol and
SupplierRepositoryProtocol, a recording job queue and a scriptable
supplier adapter.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from microservices.fulfillment_service.adapters import SupplierAdapter, SupplierFeature
from microservices.fulfillment_service.models import (
    CancelResult,
    FraudCheck,
    FulfillmentJob,
    FulfillmentType,
    JobStatus,
    Order,
    OrderItem,
    OrderPayload,
    Product,
    RiskLevel,
    Shipment,
    Supplier,
    SupplierOffer,
    SupplierOrderResponse,
    SupplierSearchResult,
    SupplierType,
    TrackingInfo,
)


class MockFulfillmentRepository:
    """In-memory fulfillment repository"""

    def __init__(self):
        self.orders: Dict[str, Order] = {}
        self.products: Dict[str, Product] = {}
        self.jobs: Dict[str, FulfillmentJob] = {}
        self.fraud_checks: Dict[str, FraudCheck] = {}
        self.shipments: Dict[tuple, Shipment] = {}
        self.errors: List[Dict[str, Any]] = []
        self.suppliers: Dict[str, Supplier] = {}
        self.offers: List[SupplierOffer] = []
        self.order_status_updates: List[tuple] = []
        self.claims: List[str] = []
        self.fail_on: Dict[str, Exception] = {}

    # Test helpers

    def add_order(
        self,
        order_id: str = "order_1",
        items: Optional[List[Dict[str, Any]]] = None,
        total_amount_cents: int = 5000,
        risk_level: Optional[RiskLevel] = RiskLevel.NORMAL,
        store_id: str = "store_1",
        shipping_address: Optional[Dict[str, Any]] = None,
        buyer_name: str = "Nino Beridze",
    ) -> Order:
        order = Order(
            id=order_id,
            store_id=store_id,
            items=[OrderItem(**item) for item in (items or [])],
            shipping_address=shipping_address if shipping_address is not None else {
                "line1": "12 Rustaveli Ave",
                "city": "Tbilisi",
                "postalCode": "0108",
                "country": "GE",
            },
            buyer_name=buyer_name,
            total_amount_cents=total_amount_cents,
            risk_level=risk_level,
            created_at=datetime.utcnow(),
        )
        self.orders[order_id] = order
        return order

    def add_product(self, product_id: str, fulfillment_type: Optional[str]) -> Product:
        product = Product(id=product_id, name=f"Product {product_id}", fulfillment_type=fulfillment_type)
        self.products[product_id] = product
        return product

    def add_supplier(
        self,
        supplier_id: str,
        supplier_type: SupplierType = SupplierType.API,
        avg_shipping_days: float = 3,
        rating: float = 4.5,
        return_rate: float = 5,
        is_active: bool = True,
        api_endpoint: Optional[str] = "https://supplier.example.com/api",
    ) -> Supplier:
        supplier = Supplier(
            id=supplier_id,
            name=f"Supplier {supplier_id}",
            type=supplier_type,
            api_endpoint=api_endpoint,
            api_key="test-key",
            avg_shipping_days=avg_shipping_days,
            rating=rating,
            return_rate=return_rate,
            is_active=is_active,
        )
        self.suppliers[supplier_id] = supplier
        return supplier

    def add_offer(
        self,
        product_id: str,
        supplier_id: str,
        cost_cents: int,
        shipping_days_max: Optional[int] = 10,
        is_available: bool = True,
    ) -> SupplierOffer:
        offer = SupplierOffer(
            id=f"offer_{len(self.offers) + 1}",
            product_id=product_id,
            supplier_id=supplier_id,
            supplier_sku=f"SKU-{product_id}-{supplier_id}",
            cost_cents=cost_cents,
            shipping_days_min=3,
            shipping_days_max=shipping_days_max,
            is_available=is_available,
            supplier=self.suppliers[supplier_id],
        )
        self.offers.append(offer)
        return offer

    def put_job(self, **fields: Any) -> FulfillmentJob:
        fields.setdefault("id", str(uuid.uuid4()))
        fields.setdefault("order_id", "order_1")
        fields.setdefault("fulfillment_type", FulfillmentType.DROPSHIP)
        fields.setdefault("created_at", datetime.utcnow())
        job = FulfillmentJob(**fields)
        self.jobs[job.id] = job
        return job

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail_on:
            raise self.fail_on[method]

    # Orders / products

    async def get_order(self, order_id: str) -> Optional[Order]:
        self._maybe_fail("get_order")
        return self.orders.get(order_id)

    async def update_order_status(self, order_id: str, status: str, delivered_at: Optional[datetime] = None) -> bool:
        self._maybe_fail("update_order_status")
        order = self.orders.get(order_id)
        if not order:
            return False
        updates: Dict[str, Any] = {"status": status}
        if delivered_at:
            if order.status == status:
                return False
            updates["delivered_at"] = order.delivered_at or delivered_at
        self.orders[order_id] = order.model_copy(update=updates)
        self.order_status_updates.append((order_id, status))
        return True

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    # Jobs

    async def create_job(
        self,
        order_id: str,
        store_id: Optional[str],
        fulfillment_type: FulfillmentType,
        items: List[Dict[str, Any]],
        max_retries: int = 3,
    ) -> FulfillmentJob:
        self._maybe_fail("create_job")
        for existing in self.jobs.values():
            if existing.order_id == order_id and existing.fulfillment_type == fulfillment_type:
                return existing
        now = datetime.utcnow()
        job = FulfillmentJob(
            id=str(uuid.uuid4()),
            order_id=order_id,
            store_id=store_id,
            fulfillment_type=fulfillment_type,
            max_retries=max_retries,
            metadata={"items": items},
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        return job

    async def get_job(self, job_id: str) -> Optional[FulfillmentJob]:
        return self.jobs.get(job_id)

    async def list_jobs(self, status=None, order_id=None, limit: int = 50, offset: int = 0) -> List[FulfillmentJob]:
        jobs = list(self.jobs.values())
        if status:
            jobs = [j for j in jobs if j.status == status]
        if order_id:
            jobs = [j for j in jobs if j.order_id == order_id]
        jobs.sort(key=lambda j: j.created_at or datetime.min, reverse=True)
        return jobs[offset:offset + limit]

    async def get_jobs_for_order(self, order_id: str) -> List[FulfillmentJob]:
        self._maybe_fail("get_jobs_for_order")
        return [j for j in self.jobs.values() if j.order_id == order_id]

    async def claim_job(self, job_id: str, now: datetime) -> Optional[FulfillmentJob]:
        job = self.jobs.get(job_id)
        if not job:
            return None
        due_retry = job.status == JobStatus.RETRYING and (job.next_retry_at is None or job.next_retry_at <= now)
        if job.status != JobStatus.QUEUED and not due_retry:
            return None
        claimed = job.model_copy(update={"status": JobStatus.PROCESSING, "updated_at": now})
        self.jobs[job_id] = claimed
        self.claims.append(job_id)
        return claimed

    async def update_job(
        self, job_id: str, expected_status: Optional[JobStatus] = None, **fields: Any
    ) -> Optional[FulfillmentJob]:
        self._maybe_fail("update_job")
        job = self.jobs.get(job_id)
        if not job:
            return None
        if expected_status is not None and job.status != expected_status:
            return None
        fields["updated_at"] = datetime.utcnow()
        updated = job.model_copy(update=fields)
        self.jobs[job_id] = updated
        return updated

    async def get_trackable_jobs(self) -> List[FulfillmentJob]:
        return [
            j for j in self.jobs.values()
            if j.status == JobStatus.SHIPPED and j.supplier_order_id
        ]

    async def get_due_jobs(self, now: datetime, queued_before: datetime, limit: int = 100) -> List[FulfillmentJob]:
        due = [
            j for j in self.jobs.values()
            if (j.status == JobStatus.RETRYING and j.next_retry_at and j.next_retry_at <= now)
            or (j.status == JobStatus.QUEUED and j.created_at and j.created_at <= queued_before)
        ]
        return due[:limit]

    async def get_stalled_jobs(self, updated_before: datetime, limit: int = 100) -> List[FulfillmentJob]:
        stalled = [
            j for j in self.jobs.values()
            if j.status == JobStatus.PROCESSING and not j.supplier_order_id
            and j.updated_at and j.updated_at <= updated_before
        ]
        return stalled[:limit]

    async def log_fulfillment_error(self, job_id: str, error_type: str, error_message: str, retry_attempt: int) -> None:
        self.errors.append({
            "job_id": job_id,
            "error_type": error_type,
            "error_message": error_message,
            "retry_attempt": retry_attempt,
        })

    # Fraud checks

    async def get_fraud_check(self, order_id: str) -> Optional[FraudCheck]:
        return self.fraud_checks.get(order_id)

    async def create_fraud_check(self, check: FraudCheck) -> FraudCheck:
        return self.fraud_checks.setdefault(check.order_id, check)

    # Shipments

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        self._maybe_fail("create_shipment")
        key = (shipment.order_id, shipment.tracking_number)
        stored = shipment.model_copy(update={"id": shipment.id or str(uuid.uuid4())})
        return self.shipments.setdefault(key, stored)

    async def upsert_shipment(self, shipment: Shipment) -> Shipment:
        key = (shipment.order_id, shipment.tracking_number)
        existing = self.shipments.get(key)
        if existing:
            shipment = shipment.model_copy(update={
                "id": existing.id,
                "shipped_at": existing.shipped_at,
                "delivered_at": existing.delivered_at or shipment.delivered_at,
                "estimated_delivery_at": shipment.estimated_delivery_at or existing.estimated_delivery_at,
            })
        else:
            shipment = shipment.model_copy(update={"id": str(uuid.uuid4())})
        self.shipments[key] = shipment
        return shipment

    async def get_shipments_for_order(self, order_id: str) -> List[Shipment]:
        return [s for (oid, _), s in self.shipments.items() if oid == order_id]

    # Suppliers

    async def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        return self.suppliers.get(supplier_id)

    async def get_supplier_offers(self, product_id: str) -> List[SupplierOffer]:
        return [
            o for o in self.offers
            if o.product_id == product_id and o.is_available and o.supplier.is_active
        ]


class RecordingJobQueue:
    """Job queue that records dispatches instead of running them"""

    def __init__(self):
        self.enqueued: List[tuple] = []

    async def enqueue(self, job_id: str, delay_seconds: float = 0) -> None:
        self.enqueued.append((job_id, delay_seconds))

    @property
    def job_ids(self) -> List[str]:
        return [job_id for job_id, _ in self.enqueued]


class FakeSupplierAdapter(SupplierAdapter):
    """Scriptable adapter: queued order responses, tracking info or errors"""

    features = {
        SupplierFeature.AUTO_TRACKING: True,
        SupplierFeature.CANCELLATION: True,
        SupplierFeature.RETURNS: False,
        SupplierFeature.WEBHOOKS: False,
    }

    def __init__(self, supplier: Supplier):
        super().__init__(supplier)
        self.order_responses: List[Any] = []
        self.tracking: Optional[TrackingInfo] = None
        self.tracking_error: Optional[Exception] = None
        self.orders: List[OrderPayload] = []
        self.tracking_calls: List[str] = []

    def queue_order_response(self, response: Any) -> None:
        """Queue a SupplierOrderResponse or an exception to raise"""
        self.order_responses.append(response)

    async def search_products(self, query: str) -> SupplierSearchResult:
        return SupplierSearchResult()

    async def get_product(self, supplier_sku: str):
        return None

    async def create_order(self, payload: OrderPayload) -> SupplierOrderResponse:
        self.orders.append(payload)
        response = self.order_responses.pop(0) if self.order_responses else SupplierOrderResponse(
            success=True,
            supplier_order_id=f"SUP-{len(self.orders)}",
            tracking_number=f"TRK{len(self.orders):06d}",
            carrier="DHL",
        )
        if isinstance(response, Exception):
            raise response
        return response

    async def get_tracking(self, supplier_order_id: str) -> Optional[TrackingInfo]:
        self.tracking_calls.append(supplier_order_id)
        if self.tracking_error:
            raise self.tracking_error
        return self.tracking

    async def cancel_order(self, supplier_order_id: str) -> CancelResult:
        return CancelResult(success=True)


class FakeAdapterFactory:
    """adapter_factory for AdapterRegistry that hands out FakeSupplierAdapters"""

    def __init__(self):
        self.adapters: Dict[str, FakeSupplierAdapter] = {}

    def __call__(self, supplier: Supplier) -> FakeSupplierAdapter:
        adapter = self.adapters.get(supplier.id)
        if adapter is None:
            adapter = FakeSupplierAdapter(supplier)
            self.adapters[supplier.id] = adapter
        return adapter

    def for_supplier(self, supplier: Supplier) -> FakeSupplierAdapter:
        return self(supplier)
