import asyncio
import json
import logging
import uuid
from typing import Any, Protocol

import aio_pika

from compliance_docs.config import settings
from compliance_docs.errors import BadRequestError
from compliance_docs.utils.clock import utc_now

logger = logging.getLogger(__name__)

PRIORITY_TIERS = {"low": 1, "medium": 5, "high": 8, "urgent": 10}
DEFAULT_PRIORITY = PRIORITY_TIERS["medium"]


def resolve_priority(value: int | str | None) -> int:
    """Map a tier name or a 1-10 integer to the broker's message priority."""
    if value is None or value == "":
        return DEFAULT_PRIORITY
    if isinstance(value, str):
        tier = value.strip().lower()
        if tier in PRIORITY_TIERS:
            return PRIORITY_TIERS[tier]
        if not tier.isdigit():
            raise BadRequestError(
                f"Invalid priority '{value}'. Use one of {', '.join(PRIORITY_TIERS)} or 1-10"
            )
        value = int(tier)
    if isinstance(value, bool) or not 1 <= value <= 10:
        raise BadRequestError("Priority must be between 1 and 10")
    return value


class MessageBroker(Protocol):
    async def publish(
        self,
        exchange: str,
        routing_key: str,
        payload: dict[str, Any],
        *,
        priority: int | None = None,
        persistent: bool = True,
        ttl_ms: int | None = None,
    ) -> None: ...

    async def queue_status(self, queue_names: list[str]) -> list[dict[str, Any]]: ...

    async def close(self) -> None: ...


class AioPikaBroker:
    """RabbitMQ adapter. Connects on first use and reconnects on its own."""

    def __init__(self, url: str):
        self.url = url
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._exchanges: dict[str, aio_pika.abc.AbstractExchange] = {}
        self._lock = asyncio.Lock()

    async def _get_channel(self) -> aio_pika.abc.AbstractChannel:
        async with self._lock:
            if self._connection is None or self._connection.is_closed:
                self._connection = await aio_pika.connect_robust(self.url)
                self._channel = None
                self._exchanges = {}
            if self._channel is None or self._channel.is_closed:
                self._channel = await self._connection.channel()
                self._exchanges = {}
            return self._channel

    async def _get_exchange(self, name: str) -> aio_pika.abc.AbstractExchange:
        channel = await self._get_channel()
        if name not in self._exchanges:
            self._exchanges[name] = await channel.declare_exchange(
                name, aio_pika.ExchangeType.TOPIC, durable=True
            )
        return self._exchanges[name]

    async def publish(
        self,
        exchange: str,
        routing_key: str,
        payload: dict[str, Any],
        *,
        priority: int | None = None,
        persistent: bool = True,
        ttl_ms: int | None = None,
    ) -> None:
        target = await self._get_exchange(exchange)
        message = aio_pika.Message(
            body=json.dumps(payload, default=str).encode("utf-8"),
            content_type="application/json",
            delivery_mode=(
                aio_pika.DeliveryMode.PERSISTENT if persistent else aio_pika.DeliveryMode.NOT_PERSISTENT
            ),
            priority=priority,
            expiration=ttl_ms / 1000 if ttl_ms else None,
        )
        await target.publish(message, routing_key=routing_key)

    async def queue_status(self, queue_names: list[str]) -> list[dict[str, Any]]:
        await self._get_channel()
        statuses = []
        for name in queue_names:
            # A failed passive declare closes its channel, so each probe gets its own.
            channel = await self._connection.channel()
            try:
                queue = await channel.declare_queue(name, passive=True)
                result = queue.declaration_result
                statuses.append({
                    "queue_name": name,
                    "message_count": result.message_count,
                    "consumer_count": result.consumer_count,
                    "status": "active",
                })
            except aio_pika.exceptions.ChannelClosed:
                statuses.append({
                    "queue_name": name,
                    "message_count": None,
                    "consumer_count": None,
                    "status": "missing",
                })
            finally:
                if not channel.is_closed:
                    await channel.close()
        return statuses

    async def close(self) -> None:
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
        self._channel = None
        self._exchanges = {}


class ProcessingQueuePublisher:
    """Hands processing jobs and verification events to the document exchange.

    Jobs are not idempotent: each call mints a new ``queueId``, so a retry
    is a second job. Publishing is fire-and-forget; no delivery receipt is
    awaited beyond the broker accepting the message.
    """

    def __init__(self, broker: MessageBroker, exchange: str | None = None):
        self.broker = broker
        self.exchange = exchange or settings.document_exchange

    async def enqueue(
        self,
        document_id: str,
        priority: int | str | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        resolved = resolve_priority(priority)
        queue_id = str(uuid.uuid4())
        envelope = {
            "documentId": document_id,
            "priority": resolved,
            "options": options,
            "timestamp": utc_now(),
            "queueId": queue_id,
        }
        try:
            await self.broker.publish(
                self.exchange,
                settings.processing_routing_key,
                envelope,
                priority=resolved,
                persistent=True,
                ttl_ms=settings.processing_ttl_ms,
            )
        except Exception as exc:
            logger.error("Failed to queue document %s for processing: %s", document_id, exc)
            raise BadRequestError("Failed to queue document for processing") from exc

        logger.info(
            "Document %s queued for processing with ID %s",
            document_id,
            queue_id,
            extra={"document_id": document_id, "queue_id": queue_id},
        )
        return queue_id

    async def publish_verification_event(self, document_id: str, status: str) -> str:
        routing_key = (
            settings.verified_routing_key if status == "approved" else settings.rejected_routing_key
        )
        message = {"documentId": document_id, "status": status, "timestamp": utc_now()}
        try:
            await self.broker.publish(self.exchange, routing_key, message, persistent=True)
        except Exception as exc:
            logger.error("Failed to publish verification event for document %s: %s", document_id, exc)
            raise BadRequestError("Failed to publish verification event") from exc

        logger.info(
            "Verification event for document %s published on %s",
            document_id,
            routing_key,
            extra={"document_id": document_id, "routing_key": routing_key},
        )
        return routing_key

    async def queue_status(self) -> list[dict[str, Any]]:
        try:
            return await self.broker.queue_status(settings.monitored_queues)
        except Exception as exc:
            logger.error("Failed to read queue status: %s", exc)
            raise BadRequestError("Message broker unavailable") from exc
