"""
Fulfillment Repository

Data access layer for fulfillment operations using PostgresClientWrapper.

Tables (schema "fulfillment" by default):
    - orders / order_items / products: upstream-owned, read here; only
      orders.status and orders.delivered_at are written
    - fulfillment_jobs: one row per fulfillment-type partition of an order,
      unique (order_id, fulfillment_type)
    - fraud_checks: one immutable row per order (unique order_id)
    - order_shipments: unique (order_id, tracking_number)
    - fulfillment_errors: append-only failure log
    - suppliers / supplier_products: supplier catalogue for scoring
"""

import json
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from core.postgres_client import PostgresClientWrapper

from .models import (
    FraudCheck,
    FulfillmentJob,
    FulfillmentType,
    JobStatus,
    Order,
    OrderItem,
    Product,
    Shipment,
    Supplier,
    SupplierOffer,
)

logger = logging.getLogger(__name__)

JOB_COLUMNS = {
    "status",
    "supplier_id",
    "supplier_order_id",
    "tracking_number",
    "carrier",
    "estimated_delivery_date",
    "retry_count",
    "max_retries",
    "next_retry_at",
    "error_message",
    "metadata",
    "processed_at",
}


def _json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return json.dumps(value)
    return value


class FulfillmentRepository:
    """
    Repository for fulfillment operations.

    Implements FulfillmentRepositoryProtocol and SupplierRepositoryProtocol.
    """

    def __init__(self, db: Optional[PostgresClientWrapper] = None, schema: str = "fulfillment"):
        """Initialize Fulfillment Repository with PostgresClientWrapper"""
        self.db = db or PostgresClientWrapper(service_name="fulfillment_service")

        self.schema = schema
        self.orders_table = "orders"
        self.order_items_table = "order_items"
        self.products_table = "products"
        self.jobs_table = "fulfillment_jobs"
        self.fraud_checks_table = "fraud_checks"
        self.shipments_table = "order_shipments"
        self.errors_table = "fulfillment_errors"
        self.suppliers_table = "suppliers"
        self.supplier_products_table = "supplier_products"

        logger.info("FulfillmentRepository initialized with PostgresClient")

    def _t(self, table: str) -> str:
        return f'"{self.schema}".{table}'

    async def initialize(self):
        """Open the connection pool"""
        await self.db.connect()

    async def close(self):
        await self.db.close()

    # ====================
    # Orders / Products
    # ====================

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Get order with its line items"""
        try:
            query = f'SELECT * FROM {self._t(self.orders_table)} WHERE id = $1'
            items_query = f'''
                SELECT * FROM {self._t(self.order_items_table)}
                WHERE order_id = $1
                ORDER BY created_at, id
            '''

            async with self.db:
                row = await self.db.query_row(query, [order_id])
                if not row:
                    return None
                items = await self.db.query(items_query, [order_id])

            return self._normalize_order(row, items or [])

        except Exception as e:
            logger.error(f"Failed to get order {order_id}: {e}")
            raise

    async def update_order_status(
        self, order_id: str, status: str, delivered_at: Optional[datetime] = None
    ) -> bool:
        """
        Update order status (and delivered_at when given).

        With delivered_at the update only applies to an order not already in
        that status and keeps the first delivered_at; returns False when
        nothing changed.
        """
        try:
            if delivered_at:
                query = f'''
                    UPDATE {self._t(self.orders_table)}
                    SET status = $1, delivered_at = COALESCE(delivered_at, $2), updated_at = $3
                    WHERE id = $4 AND status IS DISTINCT FROM $1
                '''
                params = [status, delivered_at, datetime.utcnow(), order_id]
            else:
                query = f'''
                    UPDATE {self._t(self.orders_table)}
                    SET status = $1, updated_at = $2
                    WHERE id = $3
                '''
                params = [status, datetime.utcnow(), order_id]

            async with self.db:
                count = await self.db.execute(query, params)
            return count > 0

        except Exception as e:
            logger.error(f"Failed to update order {order_id} status: {e}")
            raise

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID"""
        try:
            query = f'SELECT id, name, fulfillment_type FROM {self._t(self.products_table)} WHERE id = $1'

            async with self.db:
                row = await self.db.query_row(query, [product_id])

            return Product(**row) if row else None

        except Exception as e:
            logger.error(f"Failed to get product {product_id}: {e}")
            raise

    # ====================
    # Jobs
    # ====================

    async def create_job(
        self,
        order_id: str,
        store_id: Optional[str],
        fulfillment_type: FulfillmentType,
        items: List[Dict[str, Any]],
        max_retries: int = 3,
    ) -> FulfillmentJob:
        """
        Persist a queued fulfillment job.

        An order has at most one job per fulfillment type; if a concurrent
        caller already inserted it, that job is returned instead.
        """
        try:
            job_id = str(uuid.uuid4())
            now = datetime.utcnow()
            query = f'''
                INSERT INTO {self._t(self.jobs_table)} (
                    id, order_id, store_id, fulfillment_type, status,
                    retry_count, max_retries, metadata, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, 0, $6, $7::jsonb, $8, $8)
                ON CONFLICT (order_id, fulfillment_type) DO NOTHING
                RETURNING *
            '''
            params = [
                job_id,
                order_id,
                store_id,
                fulfillment_type.value,
                JobStatus.QUEUED.value,
                max_retries,
                json.dumps({"items": items}),
                now,
            ]

            async with self.db:
                row = await self.db.query_row(query, params)

                if not row:
                    logger.info(f"{fulfillment_type.value} job for order {order_id} already exists")
                    row = await self.db.query_row(
                        f'SELECT * FROM {self._t(self.jobs_table)} WHERE order_id = $1 AND fulfillment_type = $2',
                        [order_id, fulfillment_type.value],
                    )

            return self._normalize_job(row)

        except Exception as e:
            logger.error(f"Failed to create job for order {order_id}: {e}")
            raise

    async def get_job(self, job_id: str) -> Optional[FulfillmentJob]:
        """Get job by ID"""
        try:
            query = f'SELECT * FROM {self._t(self.jobs_table)} WHERE id = $1'

            async with self.db:
                row = await self.db.query_row(query, [job_id])

            return self._normalize_job(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get job {job_id}: {e}")
            raise

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        order_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[FulfillmentJob]:
        """List jobs with filtering, newest first"""
        try:
            conditions = []
            params: List[Any] = []
            param_count = 0

            if status:
                param_count += 1
                conditions.append(f"status = ${param_count}")
                params.append(_db_value(status))

            if order_id:
                param_count += 1
                conditions.append(f"order_id = ${param_count}")
                params.append(order_id)

            where_clause = " AND ".join(conditions) if conditions else "TRUE"
            params.extend([limit, offset])
            query = f'''
                SELECT * FROM {self._t(self.jobs_table)}
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT ${param_count + 1} OFFSET ${param_count + 2}
            '''

            async with self.db:
                results = await self.db.query(query, params)

            return [self._normalize_job(r) for r in (results or [])]

        except Exception as e:
            logger.error(f"Failed to list jobs: {e}")
            raise

    async def get_jobs_for_order(self, order_id: str) -> List[FulfillmentJob]:
        """All jobs of an order, oldest first"""
        try:
            query = f'''
                SELECT * FROM {self._t(self.jobs_table)}
                WHERE order_id = $1
                ORDER BY created_at, id
            '''

            async with self.db:
                results = await self.db.query(query, [order_id])

            return [self._normalize_job(r) for r in (results or [])]

        except Exception as e:
            logger.error(f"Failed to get jobs for order {order_id}: {e}")
            raise

    async def claim_job(self, job_id: str, now: datetime) -> Optional[FulfillmentJob]:
        """Conditionally move a queued or due retrying job to processing"""
        try:
            query = f'''
                UPDATE {self._t(self.jobs_table)}
                SET status = $2, updated_at = $3
                WHERE id = $1
                  AND (
                    status = $4
                    OR (status = $5 AND (next_retry_at IS NULL OR next_retry_at <= $3))
                  )
                RETURNING *
            '''
            params = [
                job_id,
                JobStatus.PROCESSING.value,
                now,
                JobStatus.QUEUED.value,
                JobStatus.RETRYING.value,
            ]

            async with self.db:
                row = await self.db.query_row(query, params)

            return self._normalize_job(row) if row else None

        except Exception as e:
            logger.error(f"Failed to claim job {job_id}: {e}")
            raise

    async def update_job(
        self, job_id: str, expected_status: Optional[JobStatus] = None, **fields: Any
    ) -> Optional[FulfillmentJob]:
        """
        Update job columns. With expected_status the row is only updated while
        it still has that status; returns None otherwise.
        """
        unknown = set(fields) - JOB_COLUMNS
        if unknown:
            raise ValueError(f"Unknown job columns: {sorted(unknown)}")

        try:
            updates = []
            params: List[Any] = []
            param_count = 0

            for column, value in fields.items():
                param_count += 1
                cast = "::jsonb" if column == "metadata" else ""
                updates.append(f"{column} = ${param_count}{cast}")
                params.append(_db_value(value))

            param_count += 1
            updates.append(f"updated_at = ${param_count}")
            params.append(datetime.utcnow())

            param_count += 1
            params.append(job_id)
            where_clause = f"id = ${param_count}"

            if expected_status is not None:
                param_count += 1
                params.append(_db_value(expected_status))
                where_clause += f" AND status = ${param_count}"

            query = f'''
                UPDATE {self._t(self.jobs_table)}
                SET {", ".join(updates)}
                WHERE {where_clause}
                RETURNING *
            '''

            async with self.db:
                row = await self.db.query_row(query, params)

            return self._normalize_job(row) if row else None

        except Exception as e:
            logger.error(f"Failed to update job {job_id}: {e}")
            raise

    async def get_trackable_jobs(self) -> List[FulfillmentJob]:
        """Shipped jobs that carry a supplier order id"""
        try:
            query = f'''
                SELECT * FROM {self._t(self.jobs_table)}
                WHERE status = $1 AND supplier_order_id IS NOT NULL
                ORDER BY created_at
            '''

            async with self.db:
                results = await self.db.query(query, [JobStatus.SHIPPED.value])

            return [self._normalize_job(r) for r in (results or [])]

        except Exception as e:
            logger.error(f"Failed to get trackable jobs: {e}")
            raise

    async def get_due_jobs(
        self, now: datetime, queued_before: datetime, limit: int = 100
    ) -> List[FulfillmentJob]:
        """Retrying jobs past next_retry_at and queued jobs older than queued_before"""
        try:
            query = f'''
                SELECT * FROM {self._t(self.jobs_table)}
                WHERE (status = $1 AND next_retry_at <= $2)
                   OR (status = $3 AND created_at <= $4)
                ORDER BY COALESCE(next_retry_at, created_at)
                LIMIT $5
            '''
            params = [
                JobStatus.RETRYING.value,
                now,
                JobStatus.QUEUED.value,
                queued_before,
                limit,
            ]

            async with self.db:
                results = await self.db.query(query, params)

            return [self._normalize_job(r) for r in (results or [])]

        except Exception as e:
            logger.error(f"Failed to get due jobs: {e}")
            raise

    async def get_stalled_jobs(self, updated_before: datetime, limit: int = 100) -> List[FulfillmentJob]:
        """Processing jobs with no supplier order that have not moved since updated_before"""
        try:
            query = f'''
                SELECT * FROM {self._t(self.jobs_table)}
                WHERE status = $1 AND supplier_order_id IS NULL AND updated_at <= $2
                ORDER BY updated_at
                LIMIT $3
            '''

            async with self.db:
                results = await self.db.query(query, [JobStatus.PROCESSING.value, updated_before, limit])

            return [self._normalize_job(r) for r in (results or [])]

        except Exception as e:
            logger.error(f"Failed to get stalled jobs: {e}")
            raise

    async def log_fulfillment_error(
        self, job_id: str, error_type: str, error_message: str, retry_attempt: int
    ) -> None:
        """Append a fulfillment error record"""
        try:
            query = f'''
                INSERT INTO {self._t(self.errors_table)} (
                    id, fulfillment_job_id, error_type, error_message, retry_attempt, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6)
            '''
            params = [str(uuid.uuid4()), job_id, error_type, error_message, retry_attempt, datetime.utcnow()]

            async with self.db:
                await self.db.execute(query, params)

        except Exception as e:
            logger.error(f"Failed to log fulfillment error for job {job_id}: {e}")
            raise

    # ====================
    # Fraud Checks
    # ====================

    async def get_fraud_check(self, order_id: str) -> Optional[FraudCheck]:
        """Get stored fraud check for an order"""
        try:
            query = f'SELECT * FROM {self._t(self.fraud_checks_table)} WHERE order_id = $1'

            async with self.db:
                row = await self.db.query_row(query, [order_id])

            return self._normalize_fraud_check(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get fraud check for order {order_id}: {e}")
            raise

    async def create_fraud_check(self, check: FraudCheck) -> FraudCheck:
        """Insert if absent; a concurrent insert for the same order wins"""
        try:
            query = f'''
                INSERT INTO {self._t(self.fraud_checks_table)} (
                    id, order_id, stripe_risk_level, stripe_risk_score, risk_factors,
                    status, checks_performed, created_at
                ) VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7::jsonb, $8)
                ON CONFLICT (order_id) DO NOTHING
                RETURNING *
            '''
            params = [
                str(uuid.uuid4()),
                check.order_id,
                check.risk_level,
                check.risk_score,
                json.dumps(check.risk_factors),
                check.status.value,
                json.dumps(check.checks_performed),
                check.created_at or datetime.utcnow(),
            ]

            async with self.db:
                row = await self.db.query_row(query, params)

            if row:
                return self._normalize_fraud_check(row)

            stored = await self.get_fraud_check(check.order_id)
            return stored or check

        except Exception as e:
            logger.error(f"Failed to create fraud check for order {check.order_id}: {e}")
            raise

    # ====================
    # Shipments
    # ====================

    async def create_shipment(self, shipment: Shipment) -> Shipment:
        """Create a shipment record; an existing (order, tracking number) row is kept"""
        try:
            now = datetime.utcnow()
            query = f'''
                INSERT INTO {self._t(self.shipments_table)} (
                    id, order_id, fulfillment_job_id, tracking_number, carrier, status,
                    tracking_events, shipped_at, estimated_delivery_at, delivered_at,
                    created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11, $11)
                ON CONFLICT (order_id, tracking_number) DO NOTHING
                RETURNING *
            '''
            params = self._shipment_params(shipment) + [now]

            async with self.db:
                row = await self.db.query_row(query, params)

            if row:
                return self._normalize_shipment(row)
            return await self._get_shipment(shipment.order_id, shipment.tracking_number) or shipment

        except Exception as e:
            logger.error(f"Failed to create shipment for order {shipment.order_id}: {e}")
            raise

    async def upsert_shipment(self, shipment: Shipment) -> Shipment:
        """Upsert by (order_id, tracking_number); delivered_at is set only once"""
        try:
            now = datetime.utcnow()
            table = self._t(self.shipments_table)
            query = f'''
                INSERT INTO {table} AS s (
                    id, order_id, fulfillment_job_id, tracking_number, carrier, status,
                    tracking_events, shipped_at, estimated_delivery_at, delivered_at,
                    created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11, $11)
                ON CONFLICT (order_id, tracking_number) DO UPDATE SET
                    status = EXCLUDED.status,
                    carrier = EXCLUDED.carrier,
                    tracking_events = EXCLUDED.tracking_events,
                    estimated_delivery_at = COALESCE(EXCLUDED.estimated_delivery_at, s.estimated_delivery_at),
                    delivered_at = COALESCE(s.delivered_at, EXCLUDED.delivered_at),
                    updated_at = EXCLUDED.updated_at
                RETURNING *
            '''
            params = self._shipment_params(shipment) + [now]

            async with self.db:
                row = await self.db.query_row(query, params)

            return self._normalize_shipment(row)

        except Exception as e:
            logger.error(f"Failed to upsert shipment {shipment.tracking_number}: {e}")
            raise

    async def get_shipments_for_order(self, order_id: str) -> List[Shipment]:
        """Shipments of an order"""
        try:
            query = f'''
                SELECT * FROM {self._t(self.shipments_table)}
                WHERE order_id = $1
                ORDER BY created_at
            '''

            async with self.db:
                results = await self.db.query(query, [order_id])

            return [self._normalize_shipment(r) for r in (results or [])]

        except Exception as e:
            logger.error(f"Failed to get shipments for order {order_id}: {e}")
            raise

    async def _get_shipment(self, order_id: str, tracking_number: str) -> Optional[Shipment]:
        query = f'''
            SELECT * FROM {self._t(self.shipments_table)}
            WHERE order_id = $1 AND tracking_number = $2
        '''
        async with self.db:
            row = await self.db.query_row(query, [order_id, tracking_number])
        return self._normalize_shipment(row) if row else None

    def _shipment_params(self, shipment: Shipment) -> List[Any]:
        return [
            shipment.id or str(uuid.uuid4()),
            shipment.order_id,
            shipment.fulfillment_job_id,
            shipment.tracking_number,
            shipment.carrier,
            shipment.status,
            json.dumps([e.model_dump(mode='json') for e in shipment.events]),
            shipment.shipped_at,
            shipment.estimated_delivery_at,
            shipment.delivered_at,
        ]

    # ====================
    # Suppliers
    # ====================

    async def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        """Get supplier by ID"""
        try:
            query = f'SELECT * FROM {self._t(self.suppliers_table)} WHERE id = $1'

            async with self.db:
                row = await self.db.query_row(query, [supplier_id])

            return self._normalize_supplier(row) if row else None

        except Exception as e:
            logger.error(f"Failed to get supplier {supplier_id}: {e}")
            raise

    async def get_supplier_offers(self, product_id: str) -> List[SupplierOffer]:
        """Available offers from active suppliers, in catalogue order"""
        try:
            query = f'''
                SELECT
                    sp.id AS offer_id, sp.product_id, sp.supplier_id, sp.supplier_sku,
                    sp.cost_cents, sp.shipping_days_min, sp.shipping_days_max, sp.is_available,
                    s.id, s.name, s.type, s.api_endpoint, s.api_key, s.rating,
                    s.avg_shipping_days, s.return_rate, s.is_active
                FROM {self._t(self.supplier_products_table)} sp
                JOIN {self._t(self.suppliers_table)} s ON s.id = sp.supplier_id
                WHERE sp.product_id = $1 AND sp.is_available = TRUE AND s.is_active = TRUE
                ORDER BY sp.created_at, sp.id
            '''

            async with self.db:
                results = await self.db.query(query, [product_id])

            return [
                SupplierOffer(
                    id=str(r["offer_id"]),
                    product_id=str(r["product_id"]),
                    supplier_id=str(r["supplier_id"]),
                    supplier_sku=r.get("supplier_sku"),
                    cost_cents=r["cost_cents"],
                    shipping_days_min=r.get("shipping_days_min"),
                    shipping_days_max=r.get("shipping_days_max"),
                    is_available=r["is_available"],
                    supplier=self._normalize_supplier(r),
                )
                for r in (results or [])
            ]

        except Exception as e:
            logger.error(f"Failed to get supplier offers for product {product_id}: {e}")
            raise

    # ====================
    # Normalization
    # ====================

    def _normalize_order(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Order:
        """Normalize order data from database"""
        return Order(
            id=str(data["id"]),
            store_id=str(data["store_id"]) if data.get("store_id") else None,
            items=[
                OrderItem(
                    product_id=str(i["product_id"]),
                    quantity=i.get("quantity") or 1,
                    unit_price_cents=i.get("unit_price_cents") or 0,
                    supplier_sku=i.get("supplier_sku"),
                    name=i.get("name"),
                )
                for i in items
            ],
            shipping_address=_json(data.get("shipping_address")) or {},
            buyer_name=data.get("buyer_name"),
            total_amount_cents=data.get("total_amount") or 0,
            risk_level=data.get("stripe_risk_level") or None,
            status=data.get("status") or "paid",
            delivered_at=data.get("delivered_at"),
            created_at=data.get("created_at"),
        )

    def _normalize_job(self, data: Dict[str, Any]) -> FulfillmentJob:
        """Normalize job data from database"""
        return FulfillmentJob(
            id=str(data["id"]),
            order_id=str(data["order_id"]),
            store_id=str(data["store_id"]) if data.get("store_id") else None,
            fulfillment_type=data["fulfillment_type"],
            status=data["status"],
            supplier_id=str(data["supplier_id"]) if data.get("supplier_id") else None,
            supplier_order_id=data.get("supplier_order_id"),
            tracking_number=data.get("tracking_number"),
            carrier=data.get("carrier"),
            estimated_delivery_date=data.get("estimated_delivery_date"),
            retry_count=data.get("retry_count") or 0,
            max_retries=data.get("max_retries") or 3,
            next_retry_at=data.get("next_retry_at"),
            error_message=data.get("error_message"),
            metadata=_json(data.get("metadata")) or {},
            processed_at=data.get("processed_at"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def _normalize_fraud_check(self, data: Dict[str, Any]) -> FraudCheck:
        """Normalize fraud check data from database"""
        return FraudCheck(
            order_id=str(data["order_id"]),
            risk_level=data.get("stripe_risk_level"),
            risk_score=data.get("stripe_risk_score") or 0,
            risk_factors=_json(data.get("risk_factors")) or [],
            status=data["status"],
            checks_performed=_json(data.get("checks_performed")) or {},
            created_at=data.get("created_at"),
        )

    def _normalize_shipment(self, data: Dict[str, Any]) -> Shipment:
        """Normalize shipment data from database"""
        return Shipment(
            id=str(data["id"]),
            order_id=str(data["order_id"]),
            fulfillment_job_id=str(data["fulfillment_job_id"]) if data.get("fulfillment_job_id") else None,
            tracking_number=data["tracking_number"],
            carrier=data.get("carrier") or "Unknown",
            status=data.get("status") or "in_transit",
            events=_json(data.get("tracking_events")) or [],
            shipped_at=data.get("shipped_at"),
            estimated_delivery_at=data.get("estimated_delivery_at"),
            delivered_at=data.get("delivered_at"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def _normalize_supplier(self, data: Dict[str, Any]) -> Supplier:
        """Normalize supplier data from database"""
        return Supplier(
            id=str(data["id"]),
            name=data["name"],
            type=data.get("type") or "manual",
            api_endpoint=data.get("api_endpoint"),
            api_key=data.get("api_key"),
            rating=float(data.get("rating") or 0),
            avg_shipping_days=float(data.get("avg_shipping_days") or 0),
            return_rate=float(data.get("return_rate") or 0),
            is_active=bool(data.get("is_active", True)),
        )
