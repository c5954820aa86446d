"""Tests for the execution ledger."""
import json
from unittest.mock import MagicMock

import pytest

from socialflow.errors import ExecutionFinalizedError, ExecutionNotFoundError
from socialflow.storage import (
    COORDINATOR_LOST,
    ExecutionStatus,
    InMemoryExecutionLedger,
    NodeError,
    NodeResult,
    NodeStatus,
    RedisExecutionLedger,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return InMemoryExecutionLedger(stale_after_s=900, clock=clock)


def _result(node_id, status=NodeStatus.SUCCESS):
    return NodeResult(node_id=node_id, node_type="ai_text", status=status)


class TestExecutions:
    def test_start_record_complete(self, ledger):
        execution = ledger.start("wf-1", "manual:1", workflow_version=3)

        assert execution.status == ExecutionStatus.RUNNING
        assert execution.workflow_version == 3

        ledger.record_node_result(execution.execution_id, _result("a"))
        done = ledger.complete(execution.execution_id, ExecutionStatus.SUCCESS)

        assert done.status == ExecutionStatus.SUCCESS
        assert done.is_complete
        assert [r.node_id for r in done.node_results] == ["a"]
        assert ledger.get(execution.execution_id) == done

    def test_finalized_execution_is_immutable(self, ledger):
        execution = ledger.start("wf-1", "manual:1")
        ledger.complete(execution.execution_id, ExecutionStatus.FAILED)

        with pytest.raises(ExecutionFinalizedError):
            ledger.record_node_result(execution.execution_id, _result("a"))
        with pytest.raises(ExecutionFinalizedError):
            ledger.complete(execution.execution_id, ExecutionStatus.SUCCESS)

    def test_cannot_complete_as_running(self, ledger):
        execution = ledger.start("wf-1", "manual:1")

        with pytest.raises(ValueError):
            ledger.complete(execution.execution_id, ExecutionStatus.RUNNING)

    def test_unknown_execution(self, ledger):
        with pytest.raises(ExecutionNotFoundError):
            ledger.record_node_result("missing", _result("a"))

    def test_history_newest_first(self, ledger):
        ids = [ledger.start("wf-1", f"manual:{i}").execution_id for i in range(3)]
        ledger.start("wf-2", "manual:other")

        assert [e.execution_id for e in ledger.history("wf-1")] == list(reversed(ids))
        assert [e.execution_id for e in ledger.history("wf-1", limit=2)] == [ids[2], ids[1]]

    def test_abandon(self, ledger):
        execution = ledger.start("wf-1", "manual:1")

        abandoned = ledger.abandon(execution.execution_id)

        assert abandoned.status == ExecutionStatus.FAILED
        assert abandoned.errors == [
            NodeError(code=COORDINATOR_LOST, message=abandoned.errors[0].message)
        ]
        assert ledger.running("wf-1") == []

    def test_abandon_completed_is_noop(self, ledger):
        execution = ledger.start("wf-1", "manual:1")
        done = ledger.complete(execution.execution_id, ExecutionStatus.SUCCESS)

        assert ledger.abandon(execution.execution_id) == done


class TestLocks:
    def test_exclusive(self, ledger):
        assert ledger.acquire_lock("wf-1", "exec-a").acquired

        claim = ledger.acquire_lock("wf-1", "exec-b")

        assert not claim.acquired
        assert claim.holder == "exec-a"

    def test_locks_are_per_workflow(self, ledger):
        assert ledger.acquire_lock("wf-1", "exec-a").acquired
        assert ledger.acquire_lock("wf-2", "exec-b").acquired

    def test_release_then_acquire(self, ledger):
        ledger.acquire_lock("wf-1", "exec-a")

        assert not ledger.release_lock("wf-1", "exec-b")
        assert ledger.release_lock("wf-1", "exec-a")
        assert ledger.acquire_lock("wf-1", "exec-b").acquired

    def test_stale_lock_reclaimed(self, ledger, clock):
        ledger.acquire_lock("wf-1", "exec-a")
        clock.now += 900

        claim = ledger.acquire_lock("wf-1", "exec-b")

        assert claim.acquired
        assert claim.reclaimed_from == "exec-a"
        assert not ledger.refresh_lock("wf-1", "exec-a")

    def test_refresh_keeps_lock_fresh(self, ledger, clock):
        ledger.acquire_lock("wf-1", "exec-a")
        clock.now += 600
        assert ledger.refresh_lock("wf-1", "exec-a")
        clock.now += 600

        assert not ledger.acquire_lock("wf-1", "exec-b").acquired


class TestIdempotencyKeys:
    def test_first_claim_binds(self, ledger):
        execution = ledger.start("wf-1", "manual:1")

        assert ledger.claim_idempotency_key("manual:1", execution.execution_id) is None
        assert ledger.execution_for_key("manual:1") == execution

    def test_second_claim_returns_bound_execution(self, ledger):
        first = ledger.start("wf-1", "manual:1")
        ledger.claim_idempotency_key("manual:1", first.execution_id)

        assert ledger.claim_idempotency_key("manual:1", "exec-other") == first.execution_id

    def test_key_bound_to_unstarted_execution_is_rebound(self, ledger):
        ledger.claim_idempotency_key("manual:1", "never-started")

        assert ledger.claim_idempotency_key("manual:1", "exec-new") is None
        assert ledger.execution_id_for_key("manual:1") == "exec-new"

    def test_unknown_key(self, ledger):
        assert ledger.execution_for_key("missing") is None


class TestRedisExecutionLedger:
    @pytest.fixture
    def redis_client(self):
        return MagicMock()

    def test_acquire_free_lock(self, redis_client, clock):
        redis_client.set.return_value = True
        ledger = RedisExecutionLedger(redis_client, clock=clock)

        claim = ledger.acquire_lock("wf-1", "exec-a")

        assert claim.acquired
        args, kwargs = redis_client.set.call_args
        assert args[0] == "socialflow:lock:wf-1"
        assert json.loads(args[1]) == {"holder": "exec-a", "acquired_at": 1000.0}
        assert kwargs == {"nx": True}

    def test_contended_lock(self, redis_client, clock):
        redis_client.set.return_value = None
        pipe = redis_client.pipeline.return_value.__enter__.return_value
        pipe.get.return_value = json.dumps({"holder": "exec-a", "acquired_at": 990.0})
        ledger = RedisExecutionLedger(redis_client, clock=clock)

        claim = ledger.acquire_lock("wf-1", "exec-b")

        assert not claim.acquired
        assert claim.holder == "exec-a"
        pipe.multi.assert_not_called()

    def test_stale_lock_taken_over(self, redis_client, clock):
        redis_client.set.return_value = None
        pipe = redis_client.pipeline.return_value.__enter__.return_value
        pipe.get.return_value = json.dumps({"holder": "exec-a", "acquired_at": 0.0})
        ledger = RedisExecutionLedger(redis_client, stale_after_s=900, clock=clock)

        claim = ledger.acquire_lock("wf-1", "exec-b")

        assert claim.acquired
        assert claim.reclaimed_from == "exec-a"
        pipe.multi.assert_called_once()
        pipe.execute.assert_called_once()

    def test_claim_key_returns_existing_binding(self, redis_client):
        values = {"socialflow:idempotency:manual:1": "exec-a"}

        redis_client.set.return_value = None
        redis_client.get.side_effect = values.get
        ledger = RedisExecutionLedger(redis_client)
        execution = InMemoryExecutionLedger().start("wf-1", "manual:1", execution_id="exec-a")
        values["socialflow:execution:exec-a"] = execution.model_dump_json()

        assert ledger.claim_idempotency_key("manual:1", "exec-b") == "exec-a"

    def test_get_missing_execution(self, redis_client):
        redis_client.get.return_value = None

        assert RedisExecutionLedger(redis_client).get("missing") is None
