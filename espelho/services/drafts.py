"""
Studio Draft Store
Scoped key-value persistence for the studio wizard. Session drafts carry a
TTL, style preferences are stored without one.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from redis import Redis

from espelho.core.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "espelho:studio"


def session_draft_key(session_id: str) -> str:
    return f"{KEY_PREFIX}:draft:{session_id}"


def style_preference_key(user_id: str) -> str:
    return f"{KEY_PREFIX}:style:{user_id}"


class DraftStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None):
        ...

    @abstractmethod
    def delete(self, key: str):
        ...


class InMemoryDraftStore(DraftStore):
    """Process-local store, used in tests and single-process dev servers."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}
        self._clock = clock

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return dict(value)

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None):
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (dict(value), expires_at)

    def delete(self, key: str):
        self._data.pop(key, None)


class RedisDraftStore(DraftStore):
    """Drafts as JSON strings in Redis, shared by every API process."""

    def __init__(self, redis: Optional[Redis] = None):
        self._redis = redis

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            from espelho.core.redis import get_redis
            self._redis = get_redis()
        return self._redis

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self.redis.get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"[Drafts] Discarding unreadable draft at {key}")
            self.redis.delete(key)
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None):
        payload = json.dumps(value)
        if ttl:
            self.redis.setex(key, ttl, payload)
        else:
            self.redis.set(key, payload)

    def delete(self, key: str):
        self.redis.delete(key)


_memory_store: Optional[InMemoryDraftStore] = None


def get_draft_store() -> DraftStore:
    """Redis-backed when USE_REDIS_DRAFTS is set, process memory otherwise."""
    global _memory_store
    if settings.USE_REDIS_DRAFTS:
        return RedisDraftStore()
    if _memory_store is None:
        _memory_store = InMemoryDraftStore()
    return _memory_store
