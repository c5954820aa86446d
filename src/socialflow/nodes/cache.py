"""Last-good generator outputs, used by the ``cache`` fallback policy."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis

from socialflow.content import ContentValue


class FallbackCache(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[ContentValue]:
        ...

    @abstractmethod
    def put(self, key: str, value: ContentValue) -> None:
        ...


class InMemoryFallbackCache(FallbackCache):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[str, ContentValue] = {}

    def get(self, key: str) -> Optional[ContentValue]:
        with self._lock:
            return self._values.get(key)

    def put(self, key: str, value: ContentValue) -> None:
        with self._lock:
            self._values[key] = value


class RedisFallbackCache(FallbackCache):
    def __init__(
        self,
        redis_client: redis.Redis,
        ttl_s: int = 30 * 24 * 3600,
        prefix: str = "socialflow:fallback:",
    ):
        self.redis_client = redis_client
        self._ttl = ttl_s
        self._prefix = prefix

    def get(self, key: str) -> Optional[ContentValue]:
        raw = self.redis_client.get(f"{self._prefix}{key}")
        if raw is None:
            return None
        return ContentValue.model_validate_json(raw)

    def put(self, key: str, value: ContentValue) -> None:
        self.redis_client.set(f"{self._prefix}{key}", value.model_dump_json(), ex=self._ttl)


__all__ = ["FallbackCache", "InMemoryFallbackCache", "RedisFallbackCache"]
