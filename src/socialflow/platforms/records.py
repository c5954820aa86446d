"""Delivery records keyed by publish dedupe key (executionId:nodeId)."""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis
from pydantic import BaseModel, Field

from .constraints import Platform


class PublishResult(BaseModel):
    """Outcome of a successful publish."""

    platform: Platform
    dedupe_key: str
    post_id: str
    post_url: Optional[str] = None
    segment_ids: List[str] = Field(default_factory=list)
    attempts: int = 1
    deduplicated: bool = False
    published_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class PublishRecordStore(ABC):
    @abstractmethod
    def get(self, dedupe_key: str) -> Optional[PublishResult]:
        """Return the recorded result for a dedupe key."""

    @abstractmethod
    def put_if_absent(self, result: PublishResult) -> PublishResult:
        """Record ``result`` unless a record exists; return the winning record."""


class InMemoryPublishRecordStore(PublishRecordStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, PublishResult] = {}

    def get(self, dedupe_key: str) -> Optional[PublishResult]:
        with self._lock:
            return self._records.get(dedupe_key)

    def put_if_absent(self, result: PublishResult) -> PublishResult:
        with self._lock:
            return self._records.setdefault(result.dedupe_key, result)


class RedisPublishRecordStore(PublishRecordStore):
    def __init__(
        self,
        redis_client: redis.Redis,
        ttl_s: int = 7 * 24 * 3600,
        prefix: str = "socialflow:publish:",
    ):
        self.redis_client = redis_client
        self._ttl_s = ttl_s
        self._prefix = prefix

    def _key(self, dedupe_key: str) -> str:
        return f"{self._prefix}{dedupe_key}"

    def get(self, dedupe_key: str) -> Optional[PublishResult]:
        raw = self.redis_client.get(self._key(dedupe_key))
        if raw is None:
            return None
        return PublishResult.model_validate_json(raw)

    def put_if_absent(self, result: PublishResult) -> PublishResult:
        stored = self.redis_client.set(
            self._key(result.dedupe_key), result.model_dump_json(), nx=True, ex=self._ttl_s
        )
        if stored:
            return result
        return self.get(result.dedupe_key) or result


__all__ = [
    "PublishResult",
    "PublishRecordStore",
    "InMemoryPublishRecordStore",
    "RedisPublishRecordStore",
]
