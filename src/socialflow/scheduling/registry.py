"""
Schedule registry: schedules plus a due index ordered by next_fire_at.

``pop_due`` removes due schedules from the index; the scheduler puts each
one back with its advanced instant via ``save``. A schedule taken by one
scheduler instance is therefore invisible to the others until re-saved.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import redis

from .models import Schedule


class ScheduleRegistry(ABC):
    @abstractmethod
    def get(self, schedule_id: str) -> Optional[Schedule]:
        ...

    @abstractmethod
    def save(self, schedule: Schedule) -> None:
        """Store the schedule; index it when active, unindex it when paused."""

    @abstractmethod
    def remove(self, schedule_id: str) -> bool:
        ...

    @abstractmethod
    def pop_due(self, now: datetime) -> List[Schedule]:
        """Take every active schedule with next_fire_at <= now out of the index."""

    @abstractmethod
    def list(self, workflow_id: Optional[str] = None) -> List[Schedule]:
        ...


class InMemoryScheduleRegistry(ScheduleRegistry):
    """Min-heap with lazy invalidation of superseded entries."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._schedules: Dict[str, Schedule] = {}
        self._heap: List[Tuple[datetime, int, str]] = []
        self._indexed: Dict[str, datetime] = {}
        self._seq = itertools.count()

    def get(self, schedule_id: str) -> Optional[Schedule]:
        with self._lock:
            return self._schedules.get(schedule_id)

    def save(self, schedule: Schedule) -> None:
        with self._lock:
            self._schedules[schedule.schedule_id] = schedule
            if schedule.active:
                self._indexed[schedule.schedule_id] = schedule.next_fire_at
                heapq.heappush(self._heap, (schedule.next_fire_at, next(self._seq), schedule.schedule_id))
            else:
                self._indexed.pop(schedule.schedule_id, None)

    def remove(self, schedule_id: str) -> bool:
        with self._lock:
            self._indexed.pop(schedule_id, None)
            return self._schedules.pop(schedule_id, None) is not None

    def pop_due(self, now: datetime) -> List[Schedule]:
        due = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                fire_at, _, schedule_id = heapq.heappop(self._heap)
                if self._indexed.get(schedule_id) != fire_at:
                    continue
                del self._indexed[schedule_id]
                due.append(self._schedules[schedule_id])
        return due

    def list(self, workflow_id: Optional[str] = None) -> List[Schedule]:
        with self._lock:
            schedules = list(self._schedules.values())
        if workflow_id is not None:
            schedules = [s for s in schedules if s.workflow_id == workflow_id]
        return sorted(schedules, key=lambda s: s.next_fire_at)


class RedisScheduleRegistry(ScheduleRegistry):
    """Schedules in a hash; the due index is a sorted set scored by epoch seconds."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "socialflow:schedules"):
        self.redis_client = redis_client
        self._data_key = prefix
        self._due_key = f"{prefix}:due"

    def get(self, schedule_id: str) -> Optional[Schedule]:
        raw = self.redis_client.hget(self._data_key, schedule_id)
        if raw is None:
            return None
        return Schedule.model_validate_json(raw)

    def save(self, schedule: Schedule) -> None:
        pipe = self.redis_client.pipeline()
        pipe.hset(self._data_key, schedule.schedule_id, schedule.model_dump_json())
        if schedule.active:
            pipe.zadd(self._due_key, {schedule.schedule_id: schedule.next_fire_at.timestamp()})
        else:
            pipe.zrem(self._due_key, schedule.schedule_id)
        pipe.execute()

    def remove(self, schedule_id: str) -> bool:
        pipe = self.redis_client.pipeline()
        pipe.zrem(self._due_key, schedule_id)
        pipe.hdel(self._data_key, schedule_id)
        _, removed = pipe.execute()
        return bool(removed)

    def pop_due(self, now: datetime) -> List[Schedule]:
        due = []
        for schedule_id in self.redis_client.zrangebyscore(self._due_key, "-inf", now.timestamp()):
            # Only the instance whose ZREM succeeds fires the schedule
            if not self.redis_client.zrem(self._due_key, schedule_id):
                continue
            schedule = self.get(schedule_id)
            if schedule is not None and schedule.active:
                due.append(schedule)
        return due

    def list(self, workflow_id: Optional[str] = None) -> List[Schedule]:
        schedules = [Schedule.model_validate_json(raw) for raw in self.redis_client.hvals(self._data_key)]
        if workflow_id is not None:
            schedules = [s for s in schedules if s.workflow_id == workflow_id]
        return sorted(schedules, key=lambda s: s.next_fire_at)


__all__ = ["ScheduleRegistry", "InMemoryScheduleRegistry", "RedisScheduleRegistry"]
