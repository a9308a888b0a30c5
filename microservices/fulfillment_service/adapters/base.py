"""Supplier adapter interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import (
    CancelResult,
    OrderPayload,
    Supplier,
    SupplierOrderResponse,
    SupplierProduct,
    SupplierSearchResult,
    TrackingInfo,
)


class SupplierFeature:
    """Optional capabilities an adapter may support"""
    AUTO_TRACKING = "auto_tracking"
    CANCELLATION = "cancellation"
    RETURNS = "returns"
    WEBHOOKS = "webhooks"


class SupplierAdapter(ABC):
    """Abstract supplier adapter.

    One implementation per SupplierType. Adapters are stateless apart from
    their supplier record and transport, so one instance is shared per
    supplier.
    """

    features: Dict[str, bool] = {
        SupplierFeature.AUTO_TRACKING: False,
        SupplierFeature.CANCELLATION: False,
        SupplierFeature.RETURNS: False,
        SupplierFeature.WEBHOOKS: False,
    }

    def __init__(self, supplier: Supplier):
        self.supplier = supplier

    @abstractmethod
    async def search_products(self, query: str) -> SupplierSearchResult:
        """Search the supplier catalogue."""
        raise NotImplementedError

    @abstractmethod
    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]:
        """Get a product by supplier SKU."""
        raise NotImplementedError

    @abstractmethod
    async def create_order(self, payload: OrderPayload) -> SupplierOrderResponse:
        """Place an order with the supplier."""
        raise NotImplementedError

    @abstractmethod
    async def get_tracking(self, supplier_order_id: str) -> Optional[TrackingInfo]:
        """Fetch tracking for a supplier order."""
        raise NotImplementedError

    @abstractmethod
    async def cancel_order(self, supplier_order_id: str) -> CancelResult:
        """Cancel a supplier order."""
        raise NotImplementedError

    def supports_feature(self, feature: str) -> bool:
        return self.features.get(feature, False)

    def get_supplier_info(self) -> Dict[str, Any]:
        return {
            "id": self.supplier.id,
            "name": self.supplier.name,
            "type": self.supplier.type.value,
        }

    async def close(self) -> None:
        """Release transport resources, if any."""
        return None
