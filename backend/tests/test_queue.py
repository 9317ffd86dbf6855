import pytest
import redis

from compliance_docs.config import settings
from compliance_docs.errors import BadRequestError
from compliance_docs.services.cache import RedisCacheInvalidator
from compliance_docs.services.queue_publisher import ProcessingQueuePublisher, resolve_priority


class TestPriority:
    @pytest.mark.parametrize("value,expected", [
        (None, 5),
        ("", 5),
        ("low", 1),
        ("Medium", 5),
        ("high", 8),
        ("urgent", 10),
        (3, 3),
        ("7", 7),
        (10, 10),
    ])
    def test_resolve(self, value, expected):
        assert resolve_priority(value) == expected

    @pytest.mark.parametrize("value", [0, 11, "asap", "-1", True])
    def test_rejects(self, value):
        with pytest.raises(BadRequestError):
            resolve_priority(value)


class TestProcessingQueuePublisher:
    @pytest.mark.asyncio
    async def test_envelope(self, publisher, broker):
        queue_id = await publisher.enqueue("doc-1", "low", {"ocr": True})

        [message] = broker.published
        assert message["exchange"] == "document.exchange"
        assert message["routing_key"] == "document.process"
        assert message["priority"] == 1
        assert message["ttl_ms"] == 600_000
        assert message["persistent"] is True
        payload = message["payload"]
        assert payload["documentId"] == "doc-1"
        assert payload["queueId"] == queue_id
        assert payload["options"] == {"ocr": True}
        assert payload["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_each_call_is_a_new_job(self, publisher, broker):
        first = await publisher.enqueue("doc-1")
        second = await publisher.enqueue("doc-1")
        assert first != second
        assert len(broker.published) == 2

    @pytest.mark.asyncio
    async def test_broker_failure(self, publisher, broker):
        broker.fail_on(settings.processing_routing_key)
        with pytest.raises(BadRequestError, match="Failed to queue document for processing"):
            await publisher.enqueue("doc-1")

    @pytest.mark.asyncio
    async def test_verification_routing(self, publisher, broker):
        assert await publisher.publish_verification_event("doc-1", "approved") == "document.verified"
        assert await publisher.publish_verification_event("doc-2", "rejected") == "document.rejected"
        assert [m["payload"]["status"] for m in broker.published] == ["approved", "rejected"]

    @pytest.mark.asyncio
    async def test_queue_status(self, publisher):
        statuses = await publisher.queue_status()
        assert [s["queue_name"] for s in statuses] == [
            "document.upload.queue",
            "document.process.queue",
            "document.verification.queue",
        ]

    @pytest.mark.asyncio
    async def test_queue_status_broker_down(self, broker):
        async def down(queue_names):
            raise ConnectionError("refused")

        broker.queue_status = down
        with pytest.raises(BadRequestError, match="Message broker unavailable"):
            await ProcessingQueuePublisher(broker).queue_status()


class _Unreachable:
    def __init__(self):
        self.closed = False

    def delete(self, *keys):
        raise redis.ConnectionError("connection refused")

    def close(self):
        self.closed = True


class _Recording:
    def __init__(self):
        self.deleted = []

    def delete(self, *keys):
        self.deleted.append(keys)
        return len(keys)


class TestRedisCacheInvalidator:
    def test_deletes_keys(self):
        client = _Recording()
        RedisCacheInvalidator("redis://cache:6379/0", client=client).invalidate("documents:list", "document:1")
        assert client.deleted == [("documents:list", "document:1")]

    def test_outage_is_logged_not_raised(self, caplog):
        client = _Unreachable()
        cache = RedisCacheInvalidator("redis://cache:6379/0", client=client)
        cache.invalidate("documents:list")
        cache.close()
        assert "Cache invalidation failed" in caplog.text
        assert client.closed
