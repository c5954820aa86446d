"""Tests for node executors and the dispatch table."""
import time
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from socialflow.content import ContentValue, MediaRef, PortType
from socialflow.errors import GenerationError, MalformedInputError, NodeTimeoutError, PermanentPlatformError
from socialflow.graph import Node
from socialflow.graph.node_types import NodeType
from socialflow.jobs import TriggerPayload
from socialflow.nodes import EXECUTORS, InMemoryFallbackCache, NodeContext, NodeServices, dispatch
from socialflow.platforms import InMemoryPublishRecordStore, Platform, Publisher


@pytest.fixture
def services(generator, connections, clients, media_store):
    publisher = Publisher(clients, media_store, InMemoryPublishRecordStore(), sleep=lambda s: None)
    return NodeServices(
        generator=generator,
        connections=connections,
        publisher=publisher,
        fallback_cache=InMemoryFallbackCache(),
    )


@pytest.fixture
def run(services, settings):
    """Run one node through dispatch with a fresh context."""

    def _run(node_type, inputs=None, trigger=None, node_id="node", timeout=5.0, **config):
        node = Node(id=node_id, type=node_type, config=config)
        context = NodeContext(
            execution_id="exec-1",
            workflow_id="wf-1",
            node_id=node_id,
            node_type=NodeType(node_type),
            deadline=time.monotonic() + timeout,
            settings=settings,
            services=services,
            trigger=trigger,
        )
        return dispatch(node, inputs or {}, context)

    return _run


def test_every_node_type_has_an_executor():
    assert set(EXECUTORS) == set(NodeType)


def test_invalid_config_rejected(run):
    with pytest.raises(ValidationError):
        run("ai_text", prompt="")


class TestTriggers:
    def test_schedule_trigger_outputs_fired_instant(self, run):
        instant = datetime(2024, 1, 8, 9, tzinfo=timezone.utc)
        trigger = TriggerPayload(kind="schedule", scheduled_for=instant, schedule_id="sched-1")

        outcome = run("schedule_trigger", trigger=trigger, cron="0 9 * * MON")

        assert outcome.outputs["payload"].data == {
            "scheduled_for": "2024-01-08T09:00:00+00:00",
            "schedule_id": "sched-1",
        }

    def test_manual_trigger_outputs_job_data(self, run):
        outcome = run("manual_trigger", trigger=TriggerPayload(kind="manual", data={"topic": "launch"}))

        assert outcome.outputs["payload"].data == {"topic": "launch"}

    def test_manual_trigger_falls_back_to_configured_payload(self, run):
        trigger = TriggerPayload(kind="webhook", node_id="hook", data={"x": 1})

        outcome = run("manual_trigger", trigger=trigger, payload={"topic": "default"})

        assert outcome.outputs["payload"].data == {"topic": "default"}

    def test_webhook_trigger_outputs_body_when_targeted(self, run):
        trigger = TriggerPayload(kind="webhook", node_id="hook", data={"event": "push"})

        outcome = run("webhook_trigger", trigger=trigger, node_id="hook")

        assert outcome.outputs["payload"].data == {"event": "push"}

    def test_webhook_trigger_not_targeted(self, run):
        trigger = TriggerPayload(kind="webhook", node_id="other", data={"event": "push"})

        outcome = run("webhook_trigger", trigger=trigger, node_id="hook", sample_payload={"event": "sample"})

        assert outcome.outputs["payload"].data == {"event": "sample"}


class TestAIText:
    def test_prompt_rendered_from_context(self, run, generator):
        outcome = run("ai_text", inputs={"context": ContentValue.of_text("launch day")}, prompt="Write about {context}")

        assert outcome.outputs["text"].text == "Generated post text"
        assert not outcome.degraded
        assert generator.calls[0]["prompt"] == "Write about launch day"
        assert generator.calls[0]["kind"] == PortType.TEXT

    def test_payload_context_rendered_as_json(self, run, generator):
        run("ai_text", inputs={"context": ContentValue.of_payload({"b": 2, "a": 1})}, prompt="Topic: {context}")

        assert generator.calls[0]["prompt"] == 'Topic: {"a": 1, "b": 2}'

    def test_max_length_truncates(self, run, generator):
        generator.text = "word " * 50

        outcome = run("ai_text", prompt="p", max_length=20)

        assert len(outcome.outputs["text"].text) <= 20

    def test_failure_without_fallback(self, run, generator):
        generator.fail_with = RuntimeError("model unavailable")

        with pytest.raises(GenerationError, match="model unavailable"):
            run("ai_text", prompt="p")

    def test_timeout_without_fallback(self, run, generator):
        generator.delay = 0.5

        with pytest.raises(NodeTimeoutError):
            run("ai_text", prompt="p", timeout=0.05)

    def test_cache_fallback_reuses_last_good_output(self, run, generator):
        run("ai_text", prompt="p", fallback="cache")
        generator.fail_with = RuntimeError("down")

        outcome = run("ai_text", prompt="p", fallback="cache")

        assert outcome.degraded
        assert outcome.fallback == "cache"
        assert outcome.outputs["text"].text == "Generated post text"

    def test_cache_fallback_without_cached_value(self, run, generator):
        generator.fail_with = RuntimeError("down")

        with pytest.raises(GenerationError) as exc_info:
            run("ai_text", prompt="p", fallback="cache")

        assert exc_info.value.actionable

    def test_template_fallback(self, run, generator):
        generator.fail_with = RuntimeError("down")

        outcome = run(
            "ai_text",
            inputs={"context": ContentValue.of_text("launch")},
            prompt="p",
            fallback="template",
            template_text="Big news about {context}",
        )

        assert outcome.degraded
        assert outcome.outputs["text"].text == "Big news about launch"

    def test_template_fallback_requires_template(self, run):
        with pytest.raises(ValidationError):
            run("ai_text", prompt="p", fallback="template")

    def test_skip_fallback(self, run, generator):
        generator.fail_with = RuntimeError("down")

        outcome = run("ai_text", prompt="p", fallback="skip")

        assert outcome.skipped
        assert outcome.outputs == {}
        assert "down" in outcome.skip_reason


class TestAIImage:
    def test_requested_size_passed_through(self, run, generator):
        outcome = run("ai_image", prompt="a sunrise", width=1080, height=1350)

        image = outcome.outputs["image"].media[0]
        assert (image.width, image.height) == (1080, 1350)
        assert generator.calls[0]["kind"] == PortType.IMAGE

    def test_template_fallback_on_timeout(self, run, generator):
        generator.delays[PortType.IMAGE] = 0.5

        outcome = run(
            "ai_image",
            prompt="a sunrise",
            fallback="template",
            template_media={"key": "brand/default.png", "width": 1200, "height": 1200},
            timeout=0.05,
        )

        assert outcome.degraded
        assert outcome.outputs["image"].media[0].key == "brand/default.png"


class TestModifiers:
    def test_resize_fit_keeps_aspect_ratio(self, run):
        image = ContentValue.of_media(MediaRef(key="a.png", width=2000, height=1000))

        outcome = run("resize_image", inputs={"image": image}, width=1000, height=1000)

        ref = outcome.outputs["image"].media[0]
        assert (ref.target_width, ref.target_height) == (1000, 500)
        assert ref.key == "a.png"

    def test_resize_exact(self, run):
        image = ContentValue.of_media(MediaRef(key="a.png", width=2000, height=1000))

        outcome = run("resize_image", inputs={"image": image}, width=800, height=800, mode="exact")

        assert outcome.outputs["image"].media[0].effective_size == (800, 800)

    def test_resize_without_image(self, run):
        with pytest.raises(MalformedInputError):
            run("resize_image", inputs={"image": ContentValue.of_text("no image")}, width=10, height=10)

    def test_reformat_text(self, run):
        outcome = run(
            "reformat_text",
            inputs={"text": ContentValue.of_text("hello    world")},
            prefix="New: ",
            case="upper",
            hashtags=["launch", "#ai"],
        )

        assert outcome.outputs["text"].text == "New: HELLO WORLD\n\n#launch #ai"

    def test_reformat_rejects_hashtag_with_space(self, run):
        with pytest.raises(ValidationError):
            run("reformat_text", inputs={"text": ContentValue.of_text("x")}, hashtags=["two words"])

    def test_combine_text_and_media(self, run):
        media = ContentValue.of_media(MediaRef(key="a.png", width=100, height=100))

        outcome = run("combine_content", inputs={"text": ContentValue.of_text("caption"), "media": media})

        content = outcome.outputs["content"]
        assert content.kind == PortType.MIXED
        assert content.text == "caption"
        assert [m.key for m in content.media] == ["a.png"]

    def test_combine_nothing(self, run):
        with pytest.raises(MalformedInputError):
            run("combine_content")


class TestPublish:
    def test_publishes_with_node_dedupe_key(self, run, clients):
        outcome = run(
            "twitter_post",
            inputs={"content": ContentValue.of_text("Hello")},
            node_id="tweet",
            connection_id="conn-twitter",
        )

        assert outcome.outputs["post"].data["post_id"] == "twitter-post-1"
        assert outcome.detail["post_id"] == "twitter-post-1"
        assert clients[Platform.TWITTER].calls[0]["idempotency_key"] == "exec-1:tweet"

    def test_rerun_in_same_execution_is_deduplicated(self, run, clients):
        for _ in range(2):
            outcome = run(
                "linkedin_post",
                inputs={"content": ContentValue.of_text("Hello")},
                node_id="li",
                connection_id="conn-linkedin",
            )

        assert outcome.detail["deduplicated"]
        assert len(clients[Platform.LINKEDIN].calls) == 1

    def test_unknown_connection(self, run):
        with pytest.raises(PermanentPlatformError):
            run("facebook_post", inputs={"content": ContentValue.of_text("Hello")}, connection_id="conn-missing")

    def test_thread_only_for_twitter(self, run):
        with pytest.raises(ValidationError):
            run("linkedin_post", inputs={"content": ContentValue.of_text("x")}, connection_id="conn-linkedin", thread=True)

    def test_missing_content(self, run):
        with pytest.raises(MalformedInputError):
            run("twitter_post", connection_id="conn-twitter")
