"""
Fulfillment Service Data Models

Orders handed over after payment, fulfillment jobs, fraud checks, supplier
catalogue rows, shipments and the API request/response models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field


# ====================
# Enumerations
# ====================

class FulfillmentType(str, Enum):
    """How the items of a job reach the buyer"""
    DIGITAL = "digital"
    MANUAL = "manual"
    WAREHOUSE = "warehouse"
    DROPSHIP = "dropship"


class JobStatus(str, Enum):
    """Fulfillment job status

    queued -> processing -> shipped -> delivered, with retrying as the
    retriable-failed state and failed as the terminal error state.
    """
    QUEUED = "queued"
    PROCESSING = "processing"
    RETRYING = "retrying"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = (JobStatus.DELIVERED, JobStatus.FAILED)
CLAIMABLE_JOB_STATUSES = (JobStatus.QUEUED, JobStatus.RETRYING)


class OrderStatus(str, Enum):
    """Order status values this service writes"""
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"


class RiskLevel(str, Enum):
    """Payment processor risk level"""
    NORMAL = "normal"
    ELEVATED = "elevated"
    HIGHEST = "highest"


class FraudStatus(str, Enum):
    """Fraud check outcome"""
    APPROVED = "approved"
    FLAGGED = "flagged"
    BLOCKED = "blocked"


class SupplierType(str, Enum):
    """Supplier integration type, selects the adapter variant"""
    MANUAL = "manual"
    WAREHOUSE = "warehouse"
    API = "api"
    DIGITAL = "digital"


class TrackingStatus(str, Enum):
    """Normalized carrier status"""
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"


# ====================
# Core Models
# ====================

class OrderItem(BaseModel):
    """Order line item"""
    product_id: str
    quantity: int = Field(default=1, ge=1)
    unit_price_cents: int = 0
    supplier_sku: Optional[str] = None
    name: Optional[str] = None


class Order(BaseModel):
    """Order owned upstream; only status and delivered_at are written here"""
    id: str
    store_id: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)
    shipping_address: Dict[str, Any] = Field(default_factory=dict)
    buyer_name: Optional[str] = None
    total_amount_cents: int = 0
    risk_level: Optional[RiskLevel] = None
    status: str = OrderStatus.PAID.value
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Product(BaseModel):
    """Catalogue lookup"""
    id: str
    name: Optional[str] = None
    fulfillment_type: Optional[str] = None


class FulfillmentJob(BaseModel):
    """Fulfillment job for one fulfillment-type partition of an order"""
    id: str
    order_id: str
    store_id: Optional[str] = None
    fulfillment_type: FulfillmentType
    status: JobStatus = JobStatus.QUEUED
    supplier_id: Optional[str] = None
    supplier_order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = 3
    next_retry_at: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def items(self) -> List[Dict[str, Any]]:
        return self.metadata.get("items", [])

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class FraudCheck(BaseModel):
    """Fraud check result, immutable once stored"""
    order_id: str
    risk_level: Optional[str] = None
    risk_score: int = 0
    risk_factors: List[str] = Field(default_factory=list)
    status: FraudStatus = FraudStatus.APPROVED
    checks_performed: Dict[str, bool] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class Supplier(BaseModel):
    """Supplier record"""
    id: str
    name: str
    type: SupplierType = SupplierType.MANUAL
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
    rating: float = 0.0
    avg_shipping_days: float = 0.0
    return_rate: float = 0.0
    is_active: bool = True


class SupplierOffer(BaseModel):
    """A supplier's offer for a product (supplier_products row)"""
    id: Optional[str] = None
    product_id: str
    supplier_id: str
    supplier_sku: Optional[str] = None
    cost_cents: int
    shipping_days_min: Optional[int] = None
    shipping_days_max: Optional[int] = None
    is_available: bool = True
    supplier: Supplier


class ScoreBreakdown(BaseModel):
    """Per-factor scores, each in [0, 1]"""
    price_score: float
    shipping_score: float
    rating_score: float
    risk_score: float


class SupplierScore(BaseModel):
    """Transient supplier ranking result"""
    supplier_id: str
    supplier_name: str
    cost_cents: int
    score: float
    breakdown: ScoreBreakdown


class TrackingEvent(BaseModel):
    """Single carrier tracking event"""
    timestamp: Optional[datetime] = None
    status: str
    location: Optional[str] = None
    description: Optional[str] = None


class Shipment(BaseModel):
    """Shipment record, keyed by (order_id, tracking_number)"""
    id: Optional[str] = None
    order_id: str
    fulfillment_job_id: Optional[str] = None
    tracking_number: str
    carrier: str = "Unknown"
    status: str = TrackingStatus.IN_TRANSIT.value
    events: List[TrackingEvent] = Field(default_factory=list)
    shipped_at: Optional[datetime] = None
    estimated_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ====================
# Supplier Adapter Models
# ====================

class ShippingAddress(BaseModel):
    """Normalized shipping address sent to suppliers"""
    line1: str
    line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str


class OrderPayloadItem(BaseModel):
    """Item in a supplier order"""
    supplier_sku: str
    quantity: int = 1


class OrderPayload(BaseModel):
    """Supplier order creation payload"""
    order_reference: str
    customer_name: str
    shipping_address: ShippingAddress
    items: List[OrderPayloadItem] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SupplierProduct(BaseModel):
    """Product as reported by a supplier catalogue"""
    supplier_sku: str
    name: str
    description: Optional[str] = None
    cost_cents: int = 0
    currency: str = "USD"
    stock_quantity: Optional[int] = None
    shipping_days_min: Optional[int] = None
    shipping_days_max: Optional[int] = None
    images: List[str] = Field(default_factory=list)
    attributes: Dict[str, Any] = Field(default_factory=dict)


class SupplierSearchResult(BaseModel):
    """Supplier catalogue search page"""
    products: List[SupplierProduct] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    has_more: bool = False


class SupplierOrderResponse(BaseModel):
    """Result of placing an order with a supplier"""
    success: bool
    supplier_order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class TrackingInfo(BaseModel):
    """Tracking state reported by a supplier"""
    tracking_number: str
    carrier: str = "Unknown"
    status: TrackingStatus = TrackingStatus.PENDING
    events: List[TrackingEvent] = Field(default_factory=list)
    estimated_delivery_date: Optional[datetime] = None


class CancelResult(BaseModel):
    """Supplier order cancellation result"""
    success: bool
    error: Optional[str] = None


# ====================
# Result Models
# ====================

class FulfillmentJobResult(BaseModel):
    """Result of creating fulfillment jobs for an order"""
    success: bool
    job_id: Optional[str] = None
    job_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


class TrackingSyncResult(BaseModel):
    """Tracking sweep summary"""
    synced: int = 0
    errors: int = 0


class RetrySweepResult(BaseModel):
    """Retry sweep summary"""
    enqueued: int = 0
    job_ids: List[str] = Field(default_factory=list)
    recovered: int = 0
    recovered_job_ids: List[str] = Field(default_factory=list)


# ====================
# Request / Response Models
# ====================

class CreateJobItem(BaseModel):
    """Item reference in a job creation request"""
    product_id: str
    quantity: int = Field(default=1, ge=1)


class CreateFulfillmentJobRequest(BaseModel):
    """Create fulfillment job request"""
    order_id: str = Field(..., description="Paid order ID")
    store_id: Optional[str] = Field(None, description="Store owning the order")
    items: List[CreateJobItem] = Field(default_factory=list)


class FulfillmentJobListResponse(BaseModel):
    """Job list response"""
    jobs: List[FulfillmentJob]
    count: int
    limit: int
    offset: int


class JobSummary(BaseModel):
    """Buyer-facing job view without supplier identifiers or error text"""
    id: str
    fulfillment_type: FulfillmentType
    status: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class OrderSummary(BaseModel):
    """Buyer-facing order view"""
    id: str
    status: str
    delivered_at: Optional[datetime] = None


class OrderTrackingResponse(BaseModel):
    """Order tracking lookup"""
    order: OrderSummary
    shipments: List[Shipment] = Field(default_factory=list)
    jobs: List[JobSummary] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)
