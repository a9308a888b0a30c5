"""Warehouse adapter: internal pick-pack tasks."""

import logging
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

logger = logging.getLogger(__name__)


class WarehouseSupplierAdapter(SupplierAdapter):
    """Creates a pick-pack task for the internal warehouse.

    The warehouse management system itself is external; tracking is
    entered there and is not polled.
    """

    features = {
        SupplierFeature.AUTO_TRACKING: False,
        SupplierFeature.CANCELLATION: True,
        SupplierFeature.RETURNS: True,
        SupplierFeature.WEBHOOKS: False,
    }

    async def search_products(self, query: str) -> SupplierSearchResult:
        return SupplierSearchResult()

    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]:
        return None

    async def create_order(self, payload: OrderPayload) -> SupplierOrderResponse:
        task_id = f"WH-{uuid4().hex[:12].upper()}"
        logger.info(
            f"Warehouse pick-pack task {task_id} created for {payload.order_reference} "
            f"({len(payload.items)} items)"
        )
        return SupplierOrderResponse(success=True, supplier_order_id=task_id)

    async def get_tracking(self, supplier_order_id: str) -> Optional[TrackingInfo]:
        return None

    async def cancel_order(self, supplier_order_id: str) -> CancelResult:
        return CancelResult(success=True)
