"""
Redis Connection
One pooled client per process, shared by the studio draft store and the
RQ queues. Nothing connects until a client is first requested, so the API
runs without Redis when neither feature is enabled.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from redis import ConnectionPool, Redis
from redis.exceptions import ConnectionError, TimeoutError

from espelho.core.config import settings

logger = logging.getLogger(__name__)


class Queues:
    """RQ queue names, in worker priority order."""
    GENERATION = "generation"
    MAINTENANCE = "maintenance"
    DEFAULT = "default"


def redacted_url(url: str) -> str:
    """Hide credentials: redis://:secret@host:6379/0 -> redis://***@host:6379/0"""
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    return f"{scheme}://***@{rest.rsplit('@', 1)[-1]}"


class RedisManager:
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._client: Optional[Redis] = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            # RQ pickles job payloads, so responses stay bytes
            pool = ConnectionPool.from_url(
                self.url,
                max_connections=10,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                decode_responses=False,
            )
            self._client = Redis(connection_pool=pool)
            logger.info(f"[Redis] Pool created for {redacted_url(self.url)}")
        return self._client

    def health_check(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"url": redacted_url(self.url)}
        try:
            self.client.ping()
            result.update(
                connected=True,
                redis_version=self.client.info("server").get("redis_version", "unknown"),
            )
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"[Redis] Health check failed: {e}")
            result.update(connected=False, error=str(e))
        return result

    def close(self):
        if self._client is not None:
            self._client.connection_pool.disconnect()
            self._client = None
            logger.info("[Redis] Pool closed")


@lru_cache()
def get_redis_manager() -> RedisManager:
    return RedisManager()


def get_redis() -> Redis:
    return get_redis_manager().client


def redis_health_check() -> Dict[str, Any]:
    return get_redis_manager().health_check()
