"""
NATS JetStream event bus

Event envelope plus a thin JetStream wrapper over nats-py. Publishing maps
the subject prefix to a stream ("fulfillment.job.created" goes to
"fulfillment-stream"); subscriptions are durable pull consumers.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import nats
from nats.aio.client import Client as NATS
from nats.errors import TimeoutError as NATSTimeoutError
from nats.js import JetStreamContext
from nats.js.errors import BadRequestError

from core.config import InfraConfig

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Awaitable[Any]]

STREAM_MAX_MESSAGES = 100000
FETCH_BATCH = 10


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def stream_for_subject(subject: str) -> str:
    """fulfillment.job.created -> fulfillment-stream"""
    return f"{subject.split('.')[0]}-stream"


class Event:
    """Event envelope carried on the bus"""

    def __init__(
        self,
        event_type: Union[Enum, str],
        source: Union[Enum, str],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else str(event_type)
        self.source = source.value if isinstance(source, Enum) else str(source)
        self.data = data
        self.subject = subject
        self.timestamp = datetime.utcnow().isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Event":
        event = cls(
            event_type=payload.get("type") or "",
            source=payload.get("source") or "unknown",
            data=payload.get("data") or {},
            subject=payload.get("subject"),
            metadata=payload.get("metadata"),
        )
        event.id = payload.get("id") or event.id
        event.timestamp = payload.get("timestamp") or event.timestamp
        event.version = payload.get("version", event.version)
        return event


class NATSEventBus:
    """JetStream publisher and durable pull-consumer runner"""

    def __init__(self, service_name: str, servers: Optional[str] = None):
        self.service_name = service_name
        self.servers = servers or InfraConfig.from_env().nats_servers

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._known_streams: set = set()
        self._active: Dict[str, bool] = {}
        self._consumer_tasks: List[asyncio.Task] = []

        logger.info(f"NATS EventBus created for {service_name} ({self.servers})")

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._js is not None

    async def connect(self):
        try:
            self._nc = await nats.connect(servers=self.servers, name=self.service_name)
            self._js = self._nc.jetstream()
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS at {self.servers}: {e}")
            raise

    async def _ensure_stream(self, subject: str) -> str:
        stream = stream_for_subject(subject)
        if stream in self._known_streams:
            return stream
        prefix = subject.split('.')[0]
        try:
            await self._js.add_stream(name=stream, subjects=[f"{prefix}.>"], max_msgs=STREAM_MAX_MESSAGES)
        except BadRequestError as e:
            # already exists
            logger.debug(f"Stream {stream}: {e}")
        self._known_streams.add(stream)
        return stream

    async def publish_event(self, event: Event) -> bool:
        """Publish on the subject named by the event type. Returns False on failure."""
        if not self.is_connected:
            logger.error(f"Cannot publish {event.type}: not connected to NATS")
            return False

        try:
            stream = await self._ensure_stream(event.type)
            body = json.dumps(event.to_dict(), default=_json_default).encode()
            ack = await self._js.publish(
                event.type,
                body,
                stream=stream,
                headers={"event_id": event.id, "event_type": event.type, "source": event.source},
            )
            logger.info(f"Published {event.type} [{event.id}] to {stream} seq={ack.seq}")
            return True
        except Exception as e:
            logger.error(f"Failed to publish {event.type} [{event.id}]: {e}")
            return False

    async def subscribe_to_events(
        self, pattern: str, handler: EventHandler, durable: Optional[str] = None
    ) -> Optional[str]:
        """Start a durable pull consumer for pattern; handler receives Event objects"""
        if not self.is_connected:
            logger.error(f"Cannot subscribe to {pattern}: not connected to NATS")
            return None

        consumer = durable or f"{pattern.split('.')[0]}-consumer"
        self._active[pattern] = True
        self._consumer_tasks.append(asyncio.create_task(self._consume(pattern, handler, consumer)))
        logger.info(f"Subscribed to {pattern} as {consumer}")
        return consumer

    async def _consume(self, pattern: str, handler: EventHandler, consumer: str):
        """Fetch batches, ack handled messages, nak failures for redelivery"""
        try:
            stream = await self._ensure_stream(pattern)
            psub = await self._js.pull_subscribe(pattern.replace("*", ">"), durable=consumer, stream=stream)

            while self._active.get(pattern):
                try:
                    messages = await psub.fetch(batch=FETCH_BATCH, timeout=1)
                except NATSTimeoutError:
                    continue
                except Exception as e:
                    logger.warning(f"Fetch failed for {consumer}, retrying: {e}")
                    await asyncio.sleep(5)
                    continue

                for msg in messages:
                    try:
                        payload = json.loads(msg.data.decode())
                        if {"type", "source", "data"} <= set(payload):
                            event = Event.from_dict(payload)
                        else:
                            event = Event(event_type=msg.subject, source="unknown", data=payload, subject=msg.subject)
                        await handler(event)
                        await msg.ack()
                    except Exception as e:
                        logger.error(f"Handler for {pattern} failed on {msg.subject}: {e}")
                        await msg.nak()

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Consumer {consumer} stopped with error: {e}")
        finally:
            self._active[pattern] = False

    async def close(self):
        for pattern in self._active:
            self._active[pattern] = False
        for task in self._consumer_tasks:
            if not task.done():
                task.cancel()

        if self._nc:
            await self._nc.drain()
        self._nc = None
        self._js = None
        logger.info("Disconnected from NATS")


_event_bus: Optional[NATSEventBus] = None


async def get_event_bus(service_name: str, servers: Optional[str] = None) -> NATSEventBus:
    """Process-wide connected event bus; raises if NATS is unreachable"""
    global _event_bus

    if _event_bus is None:
        bus = NATSEventBus(service_name=service_name, servers=servers)
        await bus.connect()
        _event_bus = bus

    return _event_bus
