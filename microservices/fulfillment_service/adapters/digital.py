"""Digital delivery adapter: goods are delivered instantly."""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from ..models import (
    CancelResult,
    OrderPayload,
    SupplierOrderResponse,
    SupplierProduct,
    SupplierSearchResult,
    TrackingEvent,
    TrackingInfo,
    TrackingStatus,
)
from .base import SupplierAdapter, SupplierFeature


class DigitalSupplierAdapter(SupplierAdapter):
    features = {
        SupplierFeature.AUTO_TRACKING: False,
        SupplierFeature.CANCELLATION: False,
        SupplierFeature.RETURNS: False,
        SupplierFeature.WEBHOOKS: False,
    }

    async def search_products(self, query: str) -> SupplierSearchResult:
        return SupplierSearchResult()

    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]:
        return None

    async def create_order(self, payload: OrderPayload) -> SupplierOrderResponse:
        return SupplierOrderResponse(
            success=True,
            supplier_order_id=f"DIGITAL-{uuid4().hex[:12].upper()}",
        )

    async def get_tracking(self, supplier_order_id: str) -> Optional[TrackingInfo]:
        now = datetime.utcnow()
        return TrackingInfo(
            tracking_number=supplier_order_id,
            carrier="digital",
            status=TrackingStatus.DELIVERED,
            events=[
                TrackingEvent(
                    timestamp=now,
                    status=TrackingStatus.DELIVERED.value,
                    description="Delivered digitally",
                )
            ],
        )

    async def cancel_order(self, supplier_order_id: str) -> CancelResult:
        return CancelResult(success=False, error="Digital goods are already delivered")
