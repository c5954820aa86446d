"""Redis-backed execution ledger."""
from __future__ import annotations

import json
import time
from typing import Callable, Dict, List, Optional

import redis

from socialflow.config import get_settings
from socialflow.observability import get_logger

from .ledger import ExecutionLedger
from .models import Execution, LockClaim

logger = get_logger(__name__)


class RedisExecutionLedger(ExecutionLedger):
    """
    Ledger on Redis.

    Executions are JSON documents; per-workflow history is a sorted set
    scored by start time. The lock is a JSON value taken with SET NX;
    stale locks are taken over inside a WATCH transaction so that two
    reclaimers cannot both win.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        stale_after_s: float = 900.0,
        idempotency_ttl_s: int = 7 * 24 * 3600,
        prefix: str = "socialflow:",
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(stale_after_s, clock)
        if redis_client is None:
            settings = get_settings()
            self.redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        else:
            self.redis_client = redis_client
        self._ttl = idempotency_ttl_s
        self._prefix = prefix

    def _execution_key(self, execution_id: str) -> str:
        return f"{self._prefix}execution:{execution_id}"

    def _history_key(self, workflow_id: str) -> str:
        return f"{self._prefix}history:{workflow_id}"

    def _lock_key(self, workflow_id: str) -> str:
        return f"{self._prefix}lock:{workflow_id}"

    def _idempotency_key(self, key: str) -> str:
        return f"{self._prefix}idempotency:{key}"

    # -- executions -------------------------------------------------------

    def _insert(self, execution: Execution) -> None:
        pipe = self.redis_client.pipeline()
        pipe.set(self._execution_key(execution.execution_id), execution.model_dump_json())
        pipe.zadd(self._history_key(execution.workflow_id), {execution.execution_id: self._clock()})
        pipe.execute()

    def _replace(self, execution: Execution) -> None:
        self.redis_client.set(self._execution_key(execution.execution_id), execution.model_dump_json())

    def get(self, execution_id: str) -> Optional[Execution]:
        raw = self.redis_client.get(self._execution_key(execution_id))
        if raw is None:
            return None
        return Execution.model_validate_json(raw)

    def history(self, workflow_id: str, limit: Optional[int] = None) -> List[Execution]:
        end = -1 if limit is None else limit - 1
        ids = self.redis_client.zrevrange(self._history_key(workflow_id), 0, end)
        executions = []
        for execution_id in ids:
            execution = self.get(execution_id)
            if execution is not None:
                executions.append(execution)
        return executions

    # -- locks ------------------------------------------------------------

    def _lock_value(self, holder: str) -> str:
        return json.dumps({"holder": holder, "acquired_at": self._clock()})

    def acquire_lock(self, workflow_id: str, holder: str) -> LockClaim:
        key = self._lock_key(workflow_id)
        if self.redis_client.set(key, self._lock_value(holder), nx=True):
            return LockClaim(acquired=True, holder=holder)

        with self.redis_client.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                current: Optional[Dict] = json.loads(raw) if raw else None
                if current is not None and not self._is_stale(float(current["acquired_at"])):
                    pipe.unwatch()
                    return LockClaim(acquired=False, holder=current["holder"])
                pipe.multi()
                pipe.set(key, self._lock_value(holder))
                pipe.execute()
            except redis.WatchError:
                return LockClaim(acquired=False)

        reclaimed = current["holder"] if current else None
        if reclaimed:
            logger.warning(
                "Stale execution lock reclaimed",
                extra={"workflow_id": workflow_id, "execution_id": holder, "reclaimed_from": reclaimed},
            )
        return LockClaim(acquired=True, holder=holder, reclaimed_from=reclaimed)

    def _if_holder(self, workflow_id: str, holder: str, release: bool) -> bool:
        key = self._lock_key(workflow_id)
        with self.redis_client.pipeline() as pipe:
            try:
                pipe.watch(key)
                raw = pipe.get(key)
                if raw is None or json.loads(raw).get("holder") != holder:
                    pipe.unwatch()
                    return False
                pipe.multi()
                if release:
                    pipe.delete(key)
                else:
                    pipe.set(key, self._lock_value(holder))
                pipe.execute()
                return True
            except redis.WatchError:
                return False

    def refresh_lock(self, workflow_id: str, holder: str) -> bool:
        return self._if_holder(workflow_id, holder, release=False)

    def release_lock(self, workflow_id: str, holder: str) -> bool:
        return self._if_holder(workflow_id, holder, release=True)

    # -- job idempotency --------------------------------------------------

    def _claim_key(self, key: str, execution_id: str) -> Optional[str]:
        redis_key = self._idempotency_key(key)
        if self.redis_client.set(redis_key, execution_id, nx=True, ex=self._ttl):
            return None
        return self.redis_client.get(redis_key)

    def _bind_key(self, key: str, execution_id: str) -> None:
        self.redis_client.set(self._idempotency_key(key), execution_id, ex=self._ttl)

    def execution_id_for_key(self, key: str) -> Optional[str]:
        return self.redis_client.get(self._idempotency_key(key))


__all__ = ["RedisExecutionLedger"]
