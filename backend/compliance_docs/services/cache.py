import logging

import redis

logger = logging.getLogger(__name__)

DOCUMENT_LIST_KEY = "documents:list"


def document_key(document_id: str) -> str:
    return f"document:{document_id}"


class RedisCacheInvalidator:
    """Drops cached document views after a successful commit.

    Invalidation is advisory: the database stays the source of truth, so a
    Redis outage is logged and otherwise ignored.
    """

    def __init__(self, redis_url: str, client: redis.Redis | None = None):
        self.redis_url = redis_url
        self.client = client or redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )

    def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.RedisError as exc:
            logger.warning("Cache invalidation failed for %s: %s", keys, exc)

    def close(self) -> None:
        self.client.close()
