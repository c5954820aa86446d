"""
Publisher - Idempotent delivery of formatted content.

Each publish is described by a PublishTask that carries its own retry
budget and deadline. The dedupe key (``executionId:nodeId``) is checked
before any network call and sent to the platform as an Idempotency-Key,
so a retried attempt for the same node never creates a second post.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from socialflow.collaborators import AccountConnection, MediaStore
from socialflow.errors import (
    ContentValidationError,
    PermanentPlatformError,
    PlatformError,
    TransientPlatformError,
)
from socialflow.http import HttpApiError, HttpNetworkError, HttpTimeoutError
from socialflow.observability import get_logger
from socialflow.utils import RetryPolicy, is_transient_exc, remaining, retry_call

from .clients import PlatformClient
from .constraints import Platform
from .formatter import FormattedContent, validate_content
from .records import PublishRecordStore, PublishResult

logger = get_logger(__name__)

RATE_LIMITED = 429


@dataclass(frozen=True)
class PublishTask:
    """Bounded publish request: content, dedupe key, retry budget and deadline."""

    dedupe_key: str
    formatted: FormattedContent
    visibility: str = "public"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout_s: float = 20.0
    deadline: Optional[float] = None


def classify_error(exc: BaseException, platform: Platform | str) -> PlatformError:
    """
    Map a client failure onto the transient/permanent taxonomy.

    Rate limiting, 5xx and network failures are transient. Rejected
    credentials and every other 4xx are permanent.
    """
    if isinstance(exc, PlatformError):
        return exc
    name = Platform(platform).value

    if isinstance(exc, HttpApiError) and exc.status_code is not None:
        status = exc.status_code
        if status == RATE_LIMITED:
            return TransientPlatformError(f"{name} rate limit exceeded", status_code=status)
        if status >= 500:
            return TransientPlatformError(f"{name} server error: {exc}", status_code=status)
        if status in (401, 403):
            return PermanentPlatformError(
                f"{name} rejected the account credentials (HTTP {status})",
                status_code=status,
                actionable=f"Reconnect your {name} account",
            )
        return PermanentPlatformError(
            f"{name} rejected the request: {exc}",
            status_code=status,
            actionable="Review the post content and node configuration",
        )

    if isinstance(exc, (HttpTimeoutError, HttpNetworkError)):
        return TransientPlatformError(f"{name} unreachable: {exc}")
    if is_transient_exc(exc):
        return TransientPlatformError(f"{name} call failed: {exc}")
    return PermanentPlatformError(f"{name} call failed: {exc}")


class Publisher:
    """
    Delivers formatted content through platform clients.

    Usage:
        publisher = Publisher(clients, media_store, records)
        result = publisher.publish(task, connection)
    """

    def __init__(
        self,
        clients: Dict[Platform, PlatformClient],
        media_store: MediaStore,
        records: PublishRecordStore,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.clients = clients
        self.media_store = media_store
        self.records = records
        self._sleep = sleep

    def publish(self, task: PublishTask, connection: Optional[AccountConnection]) -> PublishResult:
        """
        Publish ``task.formatted`` with the given account connection.

        Raises:
            ContentValidationError: content fails platform validation
            PermanentPlatformError: invalid connection or rejected request
            RetryExhaustedError: transient failures outlived the retry budget
        """
        platform = task.formatted.platform
        existing = self.records.get(task.dedupe_key)
        if existing is not None:
            logger.info(
                "Publish already recorded, skipping platform call",
                extra={"dedupe_key": task.dedupe_key, "post_id": existing.post_id},
            )
            return existing.model_copy(update={"deduplicated": True})

        self._check_connection(connection, platform)

        result = validate_content(task.formatted)
        if not result.ok:
            raise ContentValidationError(result.errors)

        client = self.clients.get(platform)
        if client is None:
            raise PermanentPlatformError(f"No client configured for {platform.value}")

        media_urls = self._prepare_media(task.formatted)

        attempts = 0

        def attempt(i: int):
            nonlocal attempts
            attempts = i
            timeout = remaining(task.deadline, task.timeout_s)
            if timeout <= 0:
                raise TransientPlatformError(f"{platform.value} publish deadline exceeded")
            try:
                return client.create_post(
                    task.formatted,
                    media_urls,
                    connection,
                    idempotency_key=task.dedupe_key,
                    visibility=task.visibility,
                    timeout=timeout,
                )
            except Exception as e:
                raise classify_error(e, platform) from e

        post = retry_call(attempt, task.retry, sleep=self._sleep, deadline=task.deadline)

        record = self.records.put_if_absent(PublishResult(
            platform=platform,
            dedupe_key=task.dedupe_key,
            post_id=post.post_id,
            post_url=post.post_url,
            segment_ids=post.segment_ids,
            attempts=attempts,
        ))
        if task.deadline is not None and time.monotonic() > task.deadline:
            # The post exists; the node has already been reported as timed out
            logger.warning(
                "Published after the node deadline",
                extra={"platform": platform.value, "dedupe_key": task.dedupe_key, "post_id": record.post_id},
            )
            return record
        logger.info(
            "Published",
            extra={
                "platform": platform.value,
                "dedupe_key": task.dedupe_key,
                "post_id": record.post_id,
                "attempts": attempts,
            },
        )
        return record

    @staticmethod
    def _check_connection(connection: Optional[AccountConnection], platform: Platform) -> None:
        if connection is None:
            raise PermanentPlatformError(
                f"{platform.value} connection not found",
                actionable=f"Connect a {platform.value} account",
            )
        if not connection.valid:
            raise PermanentPlatformError(
                f"{platform.value} connection {connection.connection_id} is no longer valid",
                actionable=f"Reconnect your {platform.value} account",
            )
        if connection.platform != platform.value:
            raise PermanentPlatformError(
                f"Connection {connection.connection_id} belongs to {connection.platform}, not {platform.value}",
                actionable=f"Select a {platform.value} account for this node",
            )

    def _prepare_media(self, formatted: FormattedContent) -> List[str]:
        urls = []
        for ref in formatted.media:
            key = ref.key
            if ref.needs_resize:
                key = self.media_store.resize_image(ref.key, ref.target_width, ref.target_height).key
            urls.append(self.media_store.presign(key))
        return urls


__all__ = ["PublishTask", "Publisher", "classify_error"]
