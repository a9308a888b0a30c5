"""Manual supplier adapter: the seller ships by hand."""

from typing import Optional
from uuid import uuid4

from ..models import (
    CancelResult,
    OrderPayload,
    SupplierOrderResponse,
    SupplierProduct,
    SupplierSearchResult,
    TrackingInfo,
)
from .base import SupplierAdapter, SupplierFeature


class ManualSupplierAdapter(SupplierAdapter):
    features = {
        SupplierFeature.AUTO_TRACKING: False,
        SupplierFeature.CANCELLATION: True,
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
            supplier_order_id=f"MANUAL-{uuid4().hex[:12].upper()}",
        )

    async def get_tracking(self, supplier_order_id: str) -> Optional[TrackingInfo]:
        # Tracking numbers for manual shipments are entered by the seller
        return None

    async def cancel_order(self, supplier_order_id: str) -> CancelResult:
        return CancelResult(success=True)
