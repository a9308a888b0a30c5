"""
API supplier adapter

Dropship supplier reached over HTTPS/JSON:
    POST /products/search          {"query": ...}
    GET  /products/{sku}
    POST /orders/create            {"reference", "customer", "items", "metadata"}
    GET  /orders/{id}/tracking
    POST /orders/{id}/cancel
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..models import (
    CancelResult,
    OrderPayload,
    Supplier,
    SupplierOrderResponse,
    SupplierProduct,
    SupplierSearchResult,
    TrackingEvent,
    TrackingInfo,
    TrackingStatus,
)
from ..protocols import AdapterError
from .base import SupplierAdapter, SupplierFeature

logger = logging.getLogger(__name__)


def normalize_tracking_status(status: Optional[str]) -> TrackingStatus:
    """Map a carrier-specific status string onto TrackingStatus"""
    normalized = (status or "").lower()

    if "delivered" in normalized:
        return TrackingStatus.DELIVERED
    if "out for delivery" in normalized:
        return TrackingStatus.OUT_FOR_DELIVERY
    if "transit" in normalized or "shipping" in normalized:
        return TrackingStatus.IN_TRANSIT
    if "failed" in normalized or "returned" in normalized:
        return TrackingStatus.FAILED

    return TrackingStatus.PENDING


def _str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else default


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class ApiSupplierAdapter(SupplierAdapter):
    """Client for a supplier's order API"""

    features = {
        SupplierFeature.AUTO_TRACKING: True,
        SupplierFeature.CANCELLATION: True,
        SupplierFeature.RETURNS: False,
        SupplierFeature.WEBHOOKS: True,
    }

    def __init__(
        self,
        supplier: Supplier,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        super().__init__(supplier)
        if not supplier.api_endpoint:
            raise ValueError(f"Supplier {supplier.id} has no api_endpoint")

        self.base_url = supplier.api_endpoint.rstrip('/')
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {supplier.api_key or ''}",
        }
        logger.info(f"ApiSupplierAdapter initialized for {supplier.name}: {self.base_url}")

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and return the JSON object body.

        Raises AdapterError on timeout, transport failure, non-2xx status
        or a body that is not a JSON object.
        """
        url = f"{self.base_url}{endpoint}"
        try:
            response = await self.client.request(method, url, json=payload, headers=self._headers)
        except httpx.TimeoutException as e:
            raise AdapterError(f"Request timeout: {method} {endpoint}") from e
        except httpx.HTTPError as e:
            raise AdapterError(f"Request failed: {method} {endpoint}: {e}") from e

        if response.is_error:
            raise AdapterError(f"API error: {response.status_code} - {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise AdapterError("Invalid supplier API response format") from e

        if not isinstance(body, dict):
            raise AdapterError("Invalid supplier API response format")
        return body

    def _parse_product(self, raw: Dict[str, Any], fallback_sku: str = "") -> SupplierProduct:
        return SupplierProduct(
            supplier_sku=_str(raw.get("sku")) or fallback_sku,
            name=_str(raw.get("name")) or "Unknown product",
            description=_str(raw.get("description")),
            cost_cents=_int(raw.get("price_cents"), 0),
            currency=_str(raw.get("currency")) or "USD",
            stock_quantity=_int(raw.get("stock_quantity")),
            shipping_days_min=_int(raw.get("shipping_days_min"), 7),
            shipping_days_max=_int(raw.get("shipping_days_max"), 14),
        )

    async def search_products(self, query: str) -> SupplierSearchResult:
        try:
            response = await self._request("POST", "/products/search", {"query": query})
        except AdapterError as e:
            logger.error(f"Error searching products on {self.supplier.name}: {e}")
            return SupplierSearchResult()

        raw_products = response.get("products")
        products: List[SupplierProduct] = []
        if isinstance(raw_products, list):
            products = [self._parse_product(p) for p in raw_products if isinstance(p, dict)]

        total = _int(response.get("totalCount"), None)
        if total is None:
            total = _int(response.get("total_count"), 0)

        return SupplierSearchResult(
            products=products,
            total=total,
            has_more=total > len(products),
        )

    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]:
        try:
            response = await self._request("GET", f"/products/{supplier_sku}")
        except AdapterError as e:
            logger.error(f"Error fetching product {supplier_sku} from {self.supplier.name}: {e}")
            return None

        raw = response.get("product")
        if not isinstance(raw, dict):
            return None
        return self._parse_product(raw, fallback_sku=supplier_sku)

    async def create_order(self, payload: OrderPayload) -> SupplierOrderResponse:
        body = {
            "reference": payload.order_reference,
            "customer": {
                "name": payload.customer_name,
                "address": payload.shipping_address.model_dump(),
            },
            "items": [
                {"sku": item.supplier_sku, "quantity": item.quantity}
                for item in payload.items
            ],
            "metadata": payload.metadata,
        }

        try:
            response = await self._request("POST", "/orders/create", body)
        except AdapterError as e:
            logger.error(f"Error creating order with {self.supplier.name}: {e}")
            return SupplierOrderResponse(success=False, error=str(e), error_code="API_ERROR")

        if response.get("success") is not True:
            return SupplierOrderResponse(
                success=False,
                error=_str(response.get("error")) or "Order creation failed",
                error_code=_str(response.get("error_code")),
            )

        return SupplierOrderResponse(
            success=True,
            supplier_order_id=_str(response.get("order_id")),
            tracking_number=_str(response.get("tracking_number")),
            carrier=_str(response.get("carrier")),
            estimated_delivery_date=_parse_datetime(response.get("estimated_delivery")),
        )

    async def get_tracking(self, supplier_order_id: str) -> Optional[TrackingInfo]:
        response = await self._request("GET", f"/orders/{supplier_order_id}/tracking")

        tracking = response.get("tracking")
        if not isinstance(tracking, dict):
            return None

        raw_events = tracking.get("events")
        events = []
        if isinstance(raw_events, list):
            for event in raw_events:
                if not isinstance(event, dict):
                    continue
                events.append(TrackingEvent(
                    timestamp=_parse_datetime(event.get("timestamp")) or datetime.utcnow(),
                    status=_str(event.get("status")) or "pending",
                    location=_str(event.get("location")),
                    description=_str(event.get("description")) or "Tracking update",
                ))

        return TrackingInfo(
            tracking_number=_str(tracking.get("number")) or "",
            carrier=_str(tracking.get("carrier")) or "Unknown",
            status=normalize_tracking_status(_str(tracking.get("status")) or "pending"),
            events=events,
            estimated_delivery_date=_parse_datetime(tracking.get("estimated_delivery")),
        )

    async def cancel_order(self, supplier_order_id: str) -> CancelResult:
        try:
            response = await self._request("POST", f"/orders/{supplier_order_id}/cancel")
        except AdapterError as e:
            return CancelResult(success=False, error=str(e))

        return CancelResult(
            success=response.get("success") is True,
            error=_str(response.get("error")),
        )
