"""
Supplier adapter registry

Resolves a supplier id to its adapter and caches one adapter per supplier.
The orchestrator and the tracking sync share a single registry instance.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Type

from ..models import Supplier, SupplierType
from ..protocols import SupplierRepositoryProtocol
from .api import ApiSupplierAdapter
from .base import SupplierAdapter
from .digital import DigitalSupplierAdapter
from .manual import ManualSupplierAdapter
from .warehouse import WarehouseSupplierAdapter

logger = logging.getLogger(__name__)

INTERNAL_WAREHOUSE_ID = "warehouse-001"

ADAPTER_TYPES: Dict[SupplierType, Type[SupplierAdapter]] = {
    SupplierType.MANUAL: ManualSupplierAdapter,
    SupplierType.WAREHOUSE: WarehouseSupplierAdapter,
    SupplierType.API: ApiSupplierAdapter,
    SupplierType.DIGITAL: DigitalSupplierAdapter,
}


class AdapterRegistry:
    """Per-supplier adapter cache"""

    def __init__(
        self,
        supplier_repository: SupplierRepositoryProtocol,
        timeout: float = 30.0,
        adapter_factory: Optional[Callable[[Supplier], Optional[SupplierAdapter]]] = None,
    ):
        self.supplier_repository = supplier_repository
        self.timeout = timeout
        self._adapter_factory = adapter_factory or self._build_adapter
        self._adapters: Dict[str, SupplierAdapter] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _build_adapter(self, supplier: Supplier) -> Optional[SupplierAdapter]:
        adapter_cls = ADAPTER_TYPES.get(supplier.type)
        if adapter_cls is None:
            logger.warning(f"Unknown supplier type {supplier.type} for supplier {supplier.id}")
            return None
        if adapter_cls is ApiSupplierAdapter:
            return ApiSupplierAdapter(supplier, timeout=self.timeout)
        return adapter_cls(supplier)

    async def get_adapter(self, supplier_id: str) -> Optional[SupplierAdapter]:
        """
        Adapter for a supplier, or None if the supplier is unknown.

        Concurrent first lookups of one supplier build a single adapter.
        """
        cached = self._adapters.get(supplier_id)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(supplier_id, asyncio.Lock())
        async with lock:
            cached = self._adapters.get(supplier_id)
            if cached is not None:
                return cached

            supplier = await self.supplier_repository.get_supplier(supplier_id)
            if not supplier:
                logger.warning(f"Supplier {supplier_id} not found")
                return None

            adapter = self._adapter_factory(supplier)
            if adapter is not None:
                self._adapters[supplier_id] = adapter
            return adapter

    def get_warehouse_adapter(self) -> SupplierAdapter:
        """Adapter for the internal warehouse"""
        adapter = self._adapters.get(INTERNAL_WAREHOUSE_ID)
        if adapter is None:
            adapter = WarehouseSupplierAdapter(Supplier(
                id=INTERNAL_WAREHOUSE_ID,
                name="Internal Warehouse",
                type=SupplierType.WAREHOUSE,
            ))
            self._adapters[INTERNAL_WAREHOUSE_ID] = adapter
        return adapter

    def clear(self) -> None:
        self._adapters.clear()
        self._locks.clear()

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()
