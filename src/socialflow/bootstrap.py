"""Engine assembly from settings."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis

from socialflow.collaborators import (
    ConnectionLookup,
    ContentGenerator,
    HttpConnectionLookup,
    HttpContentGenerator,
    HttpMediaStore,
    MediaStore,
)
from socialflow.config import Settings, get_settings
from socialflow.engine import ExecutionCoordinator, Worker
from socialflow.graph import GraphStore, InMemoryGraphStore, RedisGraphStore
from socialflow.jobs import InMemoryJobQueue, JobQueue, RedisJobQueue
from socialflow.nodes import InMemoryFallbackCache, NodeServices, RedisFallbackCache
from socialflow.observability import get_logger
from socialflow.platforms import (
    FacebookClient,
    InMemoryPublishRecordStore,
    InstagramClient,
    LinkedInClient,
    Platform,
    PlatformClient,
    Publisher,
    RedisPublishRecordStore,
    TwitterClient,
)
from socialflow.scheduling import InMemoryScheduleRegistry, RedisScheduleRegistry, Scheduler
from socialflow.service import WorkflowService
from socialflow.storage import ExecutionLedger, InMemoryExecutionLedger, RedisExecutionLedger

logger = get_logger(__name__)


@dataclass
class Engine:
    """Every long-lived component, wired together."""

    settings: Settings
    graph_store: GraphStore
    ledger: ExecutionLedger
    queue: JobQueue
    scheduler: Scheduler
    publisher: Publisher
    coordinator: ExecutionCoordinator
    service: WorkflowService
    worker: Worker


def default_clients(settings: Settings) -> Dict[Platform, PlatformClient]:
    timeout = settings.publish_timeout_s
    return {
        Platform.LINKEDIN: LinkedInClient(settings.linkedin_api_url, timeout),
        Platform.TWITTER: TwitterClient(settings.twitter_api_url, timeout),
        Platform.INSTAGRAM: InstagramClient(settings.facebook_graph_url, timeout),
        Platform.FACEBOOK: FacebookClient(settings.facebook_graph_url, timeout),
    }


def build_engine(
    settings: Optional[Settings] = None,
    *,
    redis_client: Optional[redis.Redis] = None,
    generator: Optional[ContentGenerator] = None,
    connections: Optional[ConnectionLookup] = None,
    media_store: Optional[MediaStore] = None,
    clients: Optional[Dict[Platform, PlatformClient]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Engine:
    """
    Build the engine. ``storage_backend`` selects in-memory or Redis
    stores; collaborators default to their HTTP implementations.
    """
    settings = settings or get_settings()

    if settings.storage_backend == "redis":
        client = redis_client or redis.from_url(settings.redis_url, decode_responses=True)
        graph_store: GraphStore = RedisGraphStore(client)
        ledger: ExecutionLedger = RedisExecutionLedger(
            client,
            stale_after_s=settings.lock_stale_after_s,
            idempotency_ttl_s=settings.idempotency_ttl_s,
        )
        queue: JobQueue = RedisJobQueue(client, idempotency_ttl_s=settings.idempotency_ttl_s)
        registry = RedisScheduleRegistry(client)
        records = RedisPublishRecordStore(client, ttl_s=settings.idempotency_ttl_s)
        cache = RedisFallbackCache(client)
    else:
        client = redis_client
        graph_store = InMemoryGraphStore()
        ledger = InMemoryExecutionLedger(stale_after_s=settings.lock_stale_after_s)
        queue = InMemoryJobQueue(idempotency_ttl_s=settings.idempotency_ttl_s)
        registry = InMemoryScheduleRegistry()
        records = InMemoryPublishRecordStore()
        cache = InMemoryFallbackCache()

    if settings.job_transport == "celery":
        from socialflow.integrations.celery_queue import CeleryJobQueue

        queue = CeleryJobQueue(
            client or redis.from_url(settings.redis_url, decode_responses=True),
            idempotency_ttl_s=settings.idempotency_ttl_s,
        )

    timeout = settings.collaborator_timeout_s
    media_store = media_store or HttpMediaStore(settings.media_url, timeout)
    publisher = Publisher(clients or default_clients(settings), media_store, records, sleep=sleep)
    services = NodeServices(
        generator=generator or HttpContentGenerator(settings.generator_url, settings.generation_timeout_s),
        connections=connections or HttpConnectionLookup(settings.connections_url, timeout),
        publisher=publisher,
        fallback_cache=cache,
    )

    scheduler = Scheduler(registry, queue, settings)
    coordinator = ExecutionCoordinator(graph_store, ledger, services, settings)
    engine = Engine(
        settings=settings,
        graph_store=graph_store,
        ledger=ledger,
        queue=queue,
        scheduler=scheduler,
        publisher=publisher,
        coordinator=coordinator,
        service=WorkflowService(graph_store, scheduler, queue, ledger),
        worker=Worker(queue, coordinator, settings),
    )
    logger.info(
        "Engine built",
        extra={"storage_backend": settings.storage_backend, "job_transport": settings.job_transport},
    )
    return engine


_engine: Engine | None = None


def get_engine() -> Engine:
    """Get or create the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def set_engine(engine: Engine) -> None:
    global _engine
    _engine = engine


def reset_engine() -> None:
    """Drop the process-wide engine (useful for testing)."""
    global _engine
    _engine = None


__all__ = ["Engine", "build_engine", "default_clients", "get_engine", "set_engine", "reset_engine"]
