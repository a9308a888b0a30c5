"""
Fulfillment Microservice API

Turns paid orders into fulfillment jobs, routes them to suppliers and keeps
tracking in sync until delivery.
"""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))
from core.config import get_settings
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import create_fulfillment_service, create_tracking_sync_service
from .fulfillment_service import (
    ERROR_FRAUD_BLOCKED,
    ERROR_NO_VALID_PRODUCTS,
    ERROR_ORDER_NOT_FOUND,
    FulfillmentService,
)
from .job_queue import InProcessJobQueue
from .models import (
    CreateFulfillmentJobRequest,
    FulfillmentJob,
    FulfillmentJobListResponse,
    FulfillmentJobResult,
    HealthResponse,
    JobStatus,
    OrderTrackingResponse,
    RetrySweepResult,
    TrackingSyncResult,
)
from .routes_registry import SERVICE_METADATA, get_route_summary
from .tracking_sync import TrackingSyncService

config = get_settings()

# Configure logger
logger = setup_service_logger("fulfillment_service", level=config.logging.log_level.upper())

# Global variables
fulfillment_service: Optional[FulfillmentService] = None
tracking_sync_service: Optional[TrackingSyncService] = None
event_bus = None
background_tasks: List[asyncio.Task] = []
SERVICE_PORT = config.port or 8260

ERROR_STATUS_CODES = {
    ERROR_ORDER_NOT_FOUND: 404,
    ERROR_FRAUD_BLOCKED: 409,
    ERROR_NO_VALID_PRODUCTS: 422,
}


async def run_periodically(name: str, interval_seconds: float, func: Callable[[], Awaitable[object]]):
    """Run func every interval_seconds until cancelled"""
    logger.info(f"Scheduled {name} every {interval_seconds}s")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await func()
        except Exception as e:
            logger.error(f"Scheduled {name} failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global fulfillment_service, tracking_sync_service, event_bus

    repository = None
    try:
        # Initialize NATS JetStream event bus
        if config.infrastructure.nats_enabled:
            try:
                event_bus = await get_event_bus(
                    "fulfillment_service", servers=config.infrastructure.nats_servers
                )
                logger.info("Event bus initialized successfully")
            except Exception as e:
                logger.warning(
                    f"Failed to initialize event bus: {e}. Continuing without event subscriptions."
                )
                event_bus = None

        # Create fulfillment service using factory
        fulfillment_service = create_fulfillment_service(config=config, event_bus=event_bus)
        tracking_sync_service = create_tracking_sync_service(fulfillment_service)

        # Initialize repository connection
        repository = fulfillment_service.repository
        await repository.initialize()

        # Subscribe to events if event bus is available
        if event_bus:
            try:
                from .events import get_event_handlers

                handler_map = get_event_handlers(fulfillment_service)

                for pattern, handler_func in handler_map.items():
                    await event_bus.subscribe_to_events(
                        pattern=pattern,
                        handler=handler_func,
                        durable=f"fulfillment-{pattern.replace('.', '-').replace('*', 'all')}-consumer",
                    )
                    logger.info(f"Subscribed to {pattern}")

                logger.info(
                    f"Fulfillment event subscriber started ({len(handler_map)} event patterns)"
                )
            except Exception as e:
                logger.warning(f"Failed to subscribe to events: {e}")

        # Scheduled sweeps
        if config.scheduler.enabled:
            background_tasks.append(asyncio.create_task(run_periodically(
                "tracking sync",
                config.scheduler.tracking_sync_interval_seconds,
                tracking_sync_service.sync_all_tracking,
            )))
            background_tasks.append(asyncio.create_task(run_periodically(
                "retry sweep",
                config.scheduler.retry_sweep_interval_seconds,
                fulfillment_service.process_due_retries,
            )))

        route_meta = get_route_summary()
        logger.info(
            f"Fulfillment service started on port {SERVICE_PORT} ({route_meta['route_count']} routes)"
        )
        yield

    except Exception as e:
        logger.error(f"Failed to initialize fulfillment service: {e}")
        raise
    finally:
        # Cleanup
        for task in background_tasks:
            task.cancel()
        if background_tasks:
            await asyncio.gather(*background_tasks, return_exceptions=True)
            background_tasks.clear()

        if fulfillment_service:
            if isinstance(fulfillment_service.job_queue, InProcessJobQueue):
                await fulfillment_service.job_queue.close()
            await fulfillment_service.adapter_registry.close()

        if event_bus:
            try:
                await event_bus.close()
                logger.info("Fulfillment event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")

        if repository:
            await repository.close()
            logger.info("Fulfillment service database connections closed")


# Create FastAPI app
app = FastAPI(
    title="Fulfillment Service",
    description="Order fulfillment orchestration: fraud screening, supplier routing, retries and tracking",
    version=SERVICE_METADATA["version"],
    lifespan=lifespan,
)


# ====================
# Dependency Injection
# ====================


async def get_fulfillment_service() -> FulfillmentService:
    """Get fulfillment service instance"""
    if not fulfillment_service:
        raise HTTPException(status_code=503, detail="Fulfillment service not initialized")
    return fulfillment_service


async def get_tracking_sync_service() -> TrackingSyncService:
    """Get tracking sync service instance"""
    if not tracking_sync_service:
        raise HTTPException(status_code=503, detail="Tracking sync not initialized")
    return tracking_sync_service


# ====================
# Health Check
# ====================


@app.get("/api/v1/fulfillment/health")
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check"""
    dependencies = {}

    # Check database connection
    try:
        if fulfillment_service and fulfillment_service.repository.db:
            is_healthy = await fulfillment_service.repository.db.health_check()
            dependencies["database"] = "healthy" if is_healthy else "unhealthy"
        else:
            dependencies["database"] = "unhealthy"
    except Exception:
        dependencies["database"] = "unhealthy"

    dependencies["event_bus"] = "healthy" if event_bus and event_bus.is_connected else "disabled"

    return HealthResponse(
        status="healthy" if dependencies["database"] == "healthy" else "degraded",
        service="fulfillment_service",
        port=SERVICE_PORT,
        version=SERVICE_METADATA["version"],
        dependencies=dependencies,
    )


# ====================
# Jobs API
# ====================


@app.post("/api/v1/fulfillment/jobs", response_model=FulfillmentJobResult)
async def create_fulfillment_job(
    request: CreateFulfillmentJobRequest,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Create fulfillment jobs for a paid order"""
    try:
        result = await service.create_fulfillment_job(
            order_id=request.order_id,
            store_id=request.store_id,
            items=request.items,
        )

        if not result.success:
            status_code = ERROR_STATUS_CODES.get(result.error_code, 500)
            raise HTTPException(
                status_code=status_code,
                detail={"error": result.error, "error_code": result.error_code},
            )

        return result

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating fulfillment job: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/fulfillment/jobs", response_model=FulfillmentJobListResponse)
async def list_fulfillment_jobs(
    status: Optional[JobStatus] = Query(default=None),
    order_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """List fulfillment jobs"""
    try:
        jobs = await service.list_jobs(status=status, order_id=order_id, limit=limit, offset=offset)
        return FulfillmentJobListResponse(jobs=jobs, count=len(jobs), limit=limit, offset=offset)

    except Exception as e:
        logger.error(f"Error listing fulfillment jobs: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.post("/api/v1/fulfillment/jobs/retry-due", response_model=RetrySweepResult)
async def retry_due_jobs(service: FulfillmentService = Depends(get_fulfillment_service)):
    """Dispatch retrying jobs whose backoff has elapsed"""
    try:
        return await service.process_due_retries()

    except Exception as e:
        logger.error(f"Error dispatching due retries: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/fulfillment/jobs/{job_id}", response_model=FulfillmentJob)
async def get_fulfillment_job(
    job_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Get fulfillment job by ID"""
    try:
        job = await service.get_job(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting fulfillment job: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.post("/api/v1/fulfillment/jobs/{job_id}/process", response_model=FulfillmentJob)
async def process_fulfillment_job(
    job_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Process a job now; jobs that are not claimable are returned unchanged"""
    try:
        if not await service.get_job(job_id):
            raise HTTPException(status_code=404, detail="Job not found")

        await service.process_fulfillment_job(job_id)
        return await service.get_job(job_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing fulfillment job: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


# ====================
# Tracking API
# ====================


@app.post("/api/v1/fulfillment/tracking/sync", response_model=TrackingSyncResult)
async def sync_tracking(sync_service: TrackingSyncService = Depends(get_tracking_sync_service)):
    """Run a tracking sync sweep"""
    try:
        return await sync_service.sync_all_tracking()

    except Exception as e:
        logger.error(f"Error syncing tracking: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@app.get("/api/v1/fulfillment/orders/{order_id}/tracking", response_model=OrderTrackingResponse)
async def get_order_tracking(
    order_id: str,
    service: FulfillmentService = Depends(get_fulfillment_service),
):
    """Buyer-facing tracking view of an order"""
    try:
        tracking = await service.get_order_tracking(order_id)
        if not tracking:
            raise HTTPException(status_code=404, detail="Order not found")
        return tracking

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting order tracking: {e}")
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.fulfillment_service.main:app",
        host=config.host,
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.logging.log_level.lower(),
    )
