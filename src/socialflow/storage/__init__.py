"""Storage package."""
from socialflow.storage.ledger import COORDINATOR_LOST, ExecutionLedger, InMemoryExecutionLedger
from socialflow.storage.models import (
    Execution,
    ExecutionStatus,
    LockClaim,
    NodeError,
    NodeResult,
    NodeStatus,
)
from socialflow.storage.redis_ledger import RedisExecutionLedger

__all__ = [
    "COORDINATOR_LOST",
    "Execution",
    "ExecutionLedger",
    "ExecutionStatus",
    "InMemoryExecutionLedger",
    "LockClaim",
    "NodeError",
    "NodeResult",
    "NodeStatus",
    "RedisExecutionLedger",
]
