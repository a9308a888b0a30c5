"""Supplier adapters, one per SupplierType"""

from .base import SupplierAdapter, SupplierFeature
from .api import ApiSupplierAdapter, normalize_tracking_status
from .digital import DigitalSupplierAdapter
from .manual import ManualSupplierAdapter
from .warehouse import WarehouseSupplierAdapter
from .registry import AdapterRegistry, INTERNAL_WAREHOUSE_ID

__all__ = [
    "SupplierAdapter",
    "SupplierFeature",
    "ApiSupplierAdapter",
    "DigitalSupplierAdapter",
    "ManualSupplierAdapter",
    "WarehouseSupplierAdapter",
    "AdapterRegistry",
    "INTERNAL_WAREHOUSE_ID",
    "normalize_tracking_status",
]
