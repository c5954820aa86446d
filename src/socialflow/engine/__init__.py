"""
Execution engine.

This package provides:
- ExecutionCoordinator: runs one job with locking, isolation and aggregation
- Worker: drains the job queue, requeueing on lock contention
"""

from .coordinator import ExecutionCoordinator, aggregate_status, node_error
from .worker import Worker

__all__ = ["ExecutionCoordinator", "Worker", "aggregate_status", "node_error"]
