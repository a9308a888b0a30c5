"""
Tracking Sync

Periodically polls suppliers for the tracking state of shipped jobs,
upserts shipment records and marks jobs and orders delivered.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from core.config import FulfillmentConfig

from .adapters import AdapterRegistry, SupplierFeature
from .models import FulfillmentJob, JobStatus, Shipment, TrackingInfo, TrackingStatus, TrackingSyncResult
from .order_status import complete_order_if_delivered
from .protocols import AdapterError, EventBusProtocol, FulfillmentRepositoryProtocol

logger = logging.getLogger(__name__)


class TrackingSyncService:
    """Reconciles tracking state from suppliers until delivery"""

    def __init__(
        self,
        repository: FulfillmentRepositoryProtocol,
        adapter_registry: AdapterRegistry,
        event_bus: Optional[EventBusProtocol] = None,
        config: Optional[FulfillmentConfig] = None,
    ):
        self.repository = repository
        self.adapter_registry = adapter_registry
        self.event_bus = event_bus
        self.config = config or FulfillmentConfig()

    async def sync_all_tracking(self) -> TrackingSyncResult:
        """Sync every shipped job; one job's failure does not stop the sweep"""
        jobs = await self.repository.get_trackable_jobs()
        result = TrackingSyncResult()

        if not jobs:
            logger.info("No jobs to sync")
            return result

        logger.info(f"Syncing tracking for {len(jobs)} jobs")
        semaphore = asyncio.Semaphore(max(1, self.config.scheduler.tracking_sync_concurrency))

        async def sync_one(job: FulfillmentJob) -> Optional[bool]:
            async with semaphore:
                try:
                    return await self.sync_job_tracking(job)
                except Exception as e:
                    logger.error(f"Error syncing job {job.id}: {e}")
                    return None

        outcomes = await asyncio.gather(*(sync_one(job) for job in jobs))
        for outcome in outcomes:
            if outcome is None:
                result.errors += 1
            elif outcome:
                result.synced += 1

        logger.info(f"Tracking sync finished: synced={result.synced}, errors={result.errors}")
        return result

    async def sync_job_tracking(self, job: FulfillmentJob) -> bool:
        """
        Sync one job. Returns True when tracking was fetched and applied,
        False when the job has nothing to sync.
        """
        if not job.supplier_id or not job.supplier_order_id:
            return False

        adapter = await self.adapter_registry.get_adapter(job.supplier_id)
        if not adapter or not adapter.supports_feature(SupplierFeature.AUTO_TRACKING):
            return False

        timeout = self.config.retry.supplier_timeout_seconds
        try:
            tracking = await asyncio.wait_for(adapter.get_tracking(job.supplier_order_id), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise AdapterError(f"Tracking request timed out after {timeout}s") from e

        if not tracking:
            return False

        now = datetime.utcnow()

        if tracking.tracking_number and tracking.tracking_number != job.tracking_number:
            await self.repository.update_job(
                job.id,
                tracking_number=tracking.tracking_number,
                carrier=tracking.carrier,
            )

        if tracking.tracking_number:
            await self._update_shipment(job, tracking, now)

        if tracking.status == TrackingStatus.DELIVERED:
            await self._handle_delivery(job, now)

        return True

    async def _update_shipment(self, job: FulfillmentJob, tracking: TrackingInfo, now: datetime) -> None:
        delivered = tracking.status == TrackingStatus.DELIVERED
        await self.repository.upsert_shipment(Shipment(
            order_id=job.order_id,
            fulfillment_job_id=job.id,
            tracking_number=tracking.tracking_number,
            carrier=tracking.carrier,
            status=tracking.status.value,
            events=tracking.events,
            estimated_delivery_at=tracking.estimated_delivery_date,
            delivered_at=now if delivered else None,
        ))

    async def _handle_delivery(self, job: FulfillmentJob, now: datetime) -> None:
        await self.repository.update_job(job.id, status=JobStatus.DELIVERED)
        logger.info(f"Job {job.id} delivered")
        await complete_order_if_delivered(self.repository, job.order_id, self.event_bus, now=now)
