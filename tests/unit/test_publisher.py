"""Tests for idempotent publishing and failure classification."""
import logging
import time
from unittest.mock import MagicMock, patch

import pytest

from socialflow.content import ContentValue, MediaRef, PortType
from socialflow.errors import (
    ContentValidationError,
    PermanentPlatformError,
    RetryExhaustedError,
    TransientPlatformError,
)
from socialflow.http import HttpApiError, HttpNetworkError, HttpTimeoutError
from socialflow.platforms import (
    FormattedContent,
    InMemoryPublishRecordStore,
    LinkedInClient,
    Platform,
    PublishResult,
    Publisher,
    PublishTask,
    RedisPublishRecordStore,
    classify_error,
    format_content,
)
from socialflow.utils import RetryPolicy


@pytest.fixture
def publisher(clients, media_store):
    return Publisher(clients, media_store, InMemoryPublishRecordStore(), sleep=lambda s: None)


def _task(platform=Platform.TWITTER, text="Hello world", key="exec-1:post", **kwargs):
    formatted = format_content(ContentValue.of_text(text), platform)
    kwargs.setdefault("retry", RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.01))
    return PublishTask(dedupe_key=key, formatted=formatted, **kwargs)


class TestClassifyError:
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_transient_statuses(self, status):
        error = classify_error(HttpApiError("boom", status_code=status), Platform.TWITTER)

        assert isinstance(error, TransientPlatformError)
        assert error.status_code == status

    @pytest.mark.parametrize("status", [401, 403])
    def test_rejected_credentials_are_actionable(self, status):
        error = classify_error(HttpApiError("denied", status_code=status), Platform.LINKEDIN)

        assert isinstance(error, PermanentPlatformError)
        assert error.actionable == "Reconnect your linkedin account"

    def test_other_client_errors_are_permanent(self):
        error = classify_error(HttpApiError("bad", status_code=422), "facebook")

        assert isinstance(error, PermanentPlatformError)
        assert error.status_code == 422

    def test_network_failures_are_transient(self):
        assert isinstance(
            classify_error(HttpTimeoutError("slow", timeout=1, url="u"), Platform.TWITTER),
            TransientPlatformError,
        )
        assert isinstance(
            classify_error(HttpNetworkError("down", url="u"), Platform.TWITTER),
            TransientPlatformError,
        )

    def test_unknown_errors_are_permanent(self):
        assert isinstance(classify_error(ValueError("nope"), Platform.TWITTER), PermanentPlatformError)


class TestPublisher:
    def test_publish_success(self, publisher, clients, connections):
        result = publisher.publish(_task(), connections.lookup_connection("conn-twitter"))

        assert result.post_id == "twitter-post-1"
        assert result.attempts == 1
        assert not result.deduplicated
        assert clients[Platform.TWITTER].calls[0]["idempotency_key"] == "exec-1:post"

    def test_same_dedupe_key_never_posts_twice(self, publisher, clients, connections):
        connection = connections.lookup_connection("conn-twitter")

        first = publisher.publish(_task(), connection)
        second = publisher.publish(_task(), connection)

        assert second.post_id == first.post_id
        assert second.deduplicated
        assert len(clients[Platform.TWITTER].calls) == 1

    def test_transient_failures_retried(self, publisher, clients, connections):
        client = clients[Platform.TWITTER]
        client.failures = [
            HttpApiError("rate limited", status_code=429),
            HttpApiError("unavailable", status_code=503),
        ]

        result = publisher.publish(_task(), connections.lookup_connection("conn-twitter"))

        assert result.attempts == 3
        assert len(client.calls) == 3
        assert {c["idempotency_key"] for c in client.calls} == {"exec-1:post"}

    def test_retry_ceiling(self, publisher, clients, connections):
        clients[Platform.TWITTER].failures = [HttpApiError("down", status_code=500)] * 5

        with pytest.raises(RetryExhaustedError) as exc_info:
            publisher.publish(_task(), connections.lookup_connection("conn-twitter"))

        assert exc_info.value.attempts == 3
        assert len(clients[Platform.TWITTER].calls) == 3

    def test_backoff_grows_exponentially(self, clients, media_store, connections):
        delays = []
        publisher = Publisher(clients, media_store, InMemoryPublishRecordStore(), sleep=delays.append)
        clients[Platform.TWITTER].failures = [HttpApiError("down", status_code=500)] * 3
        task = _task(retry=RetryPolicy(max_attempts=4, base_delay=1.0, max_delay=30.0))

        publisher.publish(task, connections.lookup_connection("conn-twitter"))

        assert delays == [1.0, 2.0, 4.0]

    def test_permanent_failure_not_retried(self, publisher, clients, connections):
        clients[Platform.TWITTER].failures = [HttpApiError("unauthorized", status_code=401)]

        with pytest.raises(PermanentPlatformError) as exc_info:
            publisher.publish(_task(), connections.lookup_connection("conn-twitter"))

        assert exc_info.value.actionable == "Reconnect your twitter account"
        assert len(clients[Platform.TWITTER].calls) == 1

    def test_invalid_connection(self, publisher, clients, connections):
        connections.invalidate("conn-twitter")

        with pytest.raises(PermanentPlatformError) as exc_info:
            publisher.publish(_task(), connections.lookup_connection("conn-twitter"))

        assert "Reconnect" in exc_info.value.actionable
        assert clients[Platform.TWITTER].calls == []

    def test_missing_connection(self, publisher):
        with pytest.raises(PermanentPlatformError):
            publisher.publish(_task(), None)

    def test_connection_for_other_platform(self, publisher, connections):
        with pytest.raises(PermanentPlatformError) as exc_info:
            publisher.publish(_task(), connections.lookup_connection("conn-linkedin"))

        assert "belongs to linkedin" in str(exc_info.value)

    def test_invalid_content_fails_before_network(self, publisher, clients, connections):
        formatted = FormattedContent(platform=Platform.TWITTER, text="x" * 300, segments=["x" * 300])
        task = PublishTask(dedupe_key="exec-1:post", formatted=formatted)

        with pytest.raises(ContentValidationError):
            publisher.publish(task, connections.lookup_connection("conn-twitter"))

        assert clients[Platform.TWITTER].calls == []

    def test_media_resized_and_presigned(self, publisher, clients, media_store, connections):
        content = ContentValue(
            kind=PortType.MIXED,
            text="look",
            media=[MediaRef(key="img.png", width=4000, height=1000)],
        )
        task = PublishTask(dedupe_key="exec-1:ig", formatted=format_content(content, Platform.INSTAGRAM))

        publisher.publish(task, connections.lookup_connection("conn-instagram"))

        key, width, height = media_store.resized[0]
        assert key == "img.png"
        assert clients[Platform.INSTAGRAM].calls[0]["media_urls"] == [
            f"https://media.test/img.png@{width}x{height}"
        ]

    def test_post_landing_after_deadline_is_recorded_and_logged(self, publisher, clients, connections, caplog):
        clients[Platform.TWITTER].delay = 0.2
        task = _task(deadline=time.monotonic() + 0.1)

        with caplog.at_level(logging.WARNING, logger="socialflow.platforms.publisher"):
            result = publisher.publish(task, connections.lookup_connection("conn-twitter"))

        assert result.post_id == "twitter-post-1"
        assert publisher.records.get("exec-1:post").post_id == "twitter-post-1"
        assert "Published after the node deadline" in caplog.text

    def test_no_platform_call_once_deadline_passed(self, publisher, clients, connections):
        task = _task(deadline=time.monotonic() - 1, retry=RetryPolicy(max_attempts=1))

        with pytest.raises(RetryExhaustedError):
            publisher.publish(task, connections.lookup_connection("conn-twitter"))

        assert clients[Platform.TWITTER].calls == []


class TestRedisPublishRecordStore:
    def test_put_if_absent_uses_set_nx(self):
        redis_client = MagicMock()
        redis_client.set.return_value = True
        store = RedisPublishRecordStore(redis_client, ttl_s=60)
        result = PublishResult(platform=Platform.TWITTER, dedupe_key="e:n", post_id="1")

        assert store.put_if_absent(result) == result
        args, kwargs = redis_client.set.call_args
        assert args[0] == "socialflow:publish:e:n"
        assert kwargs == {"nx": True, "ex": 60}

    def test_put_if_absent_returns_existing_record(self):
        existing = PublishResult(platform=Platform.TWITTER, dedupe_key="e:n", post_id="first")
        redis_client = MagicMock()
        redis_client.set.return_value = None
        redis_client.get.return_value = existing.model_dump_json()
        store = RedisPublishRecordStore(redis_client)

        stored = store.put_if_absent(PublishResult(platform=Platform.TWITTER, dedupe_key="e:n", post_id="second"))

        assert stored.post_id == "first"


class TestLinkedInClient:
    @patch("socialflow.http.requests.request")
    def test_create_post_request_shape(self, mock_request, connections):
        response = MagicMock()
        response.ok = True
        response.status_code = 201
        response.headers = {"x-restli-id": "urn:li:share:1"}
        response.json.return_value = {}
        mock_request.return_value = response
        client = LinkedInClient("https://api.linkedin.test", timeout=5)
        formatted = format_content(ContentValue.of_text("Hello"), Platform.LINKEDIN)

        post = client.create_post(
            formatted, [], connections.lookup_connection("conn-linkedin"), "exec-1:li", visibility="connections"
        )

        assert post.post_id == "urn:li:share:1"
        kwargs = mock_request.call_args.kwargs
        assert kwargs["url"] == "https://api.linkedin.test/v2/ugcPosts"
        assert kwargs["headers"]["Idempotency-Key"] == "exec-1:li"
        assert kwargs["headers"]["Authorization"] == "Bearer token-linkedin"
        assert kwargs["json"]["author"] == "urn:li:person:linkedin-account"
        visibility = kwargs["json"]["visibility"]["com.linkedin.ugc.MemberNetworkVisibility"]
        assert visibility == "CONNECTIONS"

    @patch("socialflow.http.requests.request")
    def test_error_status_raises_api_error(self, mock_request, connections):
        response = MagicMock()
        response.ok = False
        response.status_code = 401
        response.reason = "Unauthorized"
        response.headers = {}
        response.text = "expired"
        mock_request.return_value = response
        client = LinkedInClient("https://api.linkedin.test")
        formatted = format_content(ContentValue.of_text("Hello"), Platform.LINKEDIN)

        with pytest.raises(HttpApiError) as exc_info:
            client.create_post(formatted, [], connections.lookup_connection("conn-linkedin"), "k")

        assert exc_info.value.status_code == 401
