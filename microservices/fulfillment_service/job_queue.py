"""
Fulfillment job dispatch

Two JobQueueProtocol implementations:
- InProcessJobQueue: runs process_fulfillment_job on the service's event
  loop, optionally after a delay.
- NATSJobQueue: publishes fulfillment.job.process to JetStream; any replica
  subscribed to that subject processes the job.

Both are at-least-once. process_fulfillment_job is idempotent, and the
persisted next_retry_at column (swept by process_due_retries) is the
durable schedule, so a lost timer only delays a retry.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from core.nats_client import Event

from .events.models import FulfillmentEventType

logger = logging.getLogger(__name__)

JobHandler = Callable[[str], Awaitable[None]]


class InProcessJobQueue:
    """Fire-and-forget asyncio dispatch inside the service process"""

    def __init__(self, handler: Optional[JobHandler] = None):
        self._handler = handler
        self._tasks: Set[asyncio.Task] = set()

    def set_handler(self, handler: JobHandler) -> None:
        self._handler = handler

    async def enqueue(self, job_id: str, delay_seconds: float = 0) -> None:
        if self._handler is None:
            raise RuntimeError("InProcessJobQueue has no handler")

        task = asyncio.create_task(self._run(job_id, delay_seconds))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Enqueued job {job_id} (delay={delay_seconds}s)")

    async def _run(self, job_id: str, delay_seconds: float) -> None:
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        try:
            await self._handler(job_id)
        except Exception as e:
            logger.error(f"Unhandled error processing job {job_id}: {e}", exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for tasks that are due now; used by tests and shutdown"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()


class NATSJobQueue:
    """Dispatch through the fulfillment.job.process JetStream subject"""

    def __init__(self, event_bus):
        self.event_bus = event_bus

    async def enqueue(self, job_id: str, delay_seconds: float = 0) -> None:
        if delay_seconds > 0:
            # JetStream has no delayed publish; the retry sweep picks the job
            # up once next_retry_at has passed
            logger.debug(f"Job {job_id} deferred {delay_seconds}s to retry sweep")
            return

        event = Event(
            event_type=FulfillmentEventType.JOB_PROCESS,
            source="fulfillment_service",
            data={"job_id": job_id},
        )
        published = await self.event_bus.publish_event(event)
        if not published:
            logger.error(f"Failed to enqueue job {job_id}; retry sweep will pick it up")
