"""End-to-end scenarios through scheduler, queue, worker and coordinator."""
from datetime import datetime, timedelta, timezone

from socialflow.bootstrap import build_engine
from socialflow.content import PortType
from socialflow.http import HttpApiError
from socialflow.platforms import Platform
from socialflow.storage import ExecutionStatus, NodeStatus

MONDAY_9AM = datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)


def test_weekly_schedule_publishes_to_linkedin(engine, builder, clients):
    """A Monday 09:00 schedule fires once and publishes one post."""
    graph = builder.text_to("wf-weekly", Platform.LINKEDIN, trigger="schedule_trigger")
    engine.service.save_graph(graph)
    schedule = engine.scheduler.create("wf-weekly", "0 9 * * MON", "UTC", now=datetime(2024, 1, 5, tzinfo=timezone.utc))

    jobs = engine.scheduler.tick(MONDAY_9AM + timedelta(seconds=3))
    engine.scheduler.tick(MONDAY_9AM + timedelta(seconds=8))
    processed = engine.worker.drain()

    assert processed == 1
    assert [job.idempotency_key for job in jobs] == [f"{schedule.schedule_id}:2024-01-08T09:00:00+00:00"]
    execution = engine.service.get_execution_for_job(jobs[0].idempotency_key)
    assert execution.status == ExecutionStatus.SUCCESS
    assert len(clients[Platform.LINKEDIN].calls) == 1
    assert engine.scheduler.get(schedule.schedule_id).next_fire_at == MONDAY_9AM + timedelta(days=7)


def test_image_generation_timeout_uses_template(settings, generator, connections, media_store, clients, builder):
    """A slow image generator degrades to the template image; the run is partial."""
    settings = settings.model_copy(update={"generation_timeout_s": 0.1})
    engine = build_engine(
        settings,
        generator=generator,
        connections=connections,
        media_store=media_store,
        clients=clients,
        sleep=lambda s: None,
    )
    generator.delays[PortType.IMAGE] = 1.0
    graph = builder.graph(
        "wf-image",
        [
            builder.node("trigger", "manual_trigger", payload={"topic": "spring sale"}),
            builder.node("text", "ai_text", prompt="Caption for {context}"),
            builder.node(
                "image", "ai_image",
                prompt="Poster for {context}",
                fallback="template",
                template_media={"key": "brand/fallback.png", "width": 1080, "height": 1080},
            ),
            builder.node("combine", "combine_content"),
            builder.node("instagram_post", "instagram_post", connection_id="conn-instagram"),
        ],
        [
            builder.conn("trigger", "payload", "text", "context"),
            builder.conn("trigger", "payload", "image", "context"),
            builder.conn("text", "text", "combine", "text"),
            builder.conn("image", "image", "combine", "media"),
            builder.conn("combine", "content", "instagram_post", "content"),
        ],
    )
    engine.service.save_graph(graph)

    job = engine.service.execute_workflow("wf-image")
    engine.worker.drain()

    execution = engine.service.get_execution_for_job(job.idempotency_key)
    assert execution.status == ExecutionStatus.PARTIAL
    image = execution.result_for("image")
    assert image.status == NodeStatus.SUCCESS
    assert image.degraded
    assert image.fallback == "template"
    assert execution.result_for("instagram_post").status == NodeStatus.SUCCESS
    assert clients[Platform.INSTAGRAM].calls[0]["media_urls"] == ["https://media.test/brand/fallback.png"]


def test_expired_twitter_token_does_not_block_linkedin(engine, builder, clients):
    """A rejected Twitter token fails only that branch, with a reconnect hint."""
    clients[Platform.TWITTER].failures = [HttpApiError("HTTP 401: Unauthorized", status_code=401)]
    engine.service.save_graph(builder.text_to("wf-multi", Platform.LINKEDIN, Platform.TWITTER))

    job = engine.service.execute_workflow("wf-multi", {"topic": "release"})
    engine.worker.drain()

    execution = engine.service.get_execution_for_job(job.idempotency_key)
    assert execution.status == ExecutionStatus.PARTIAL
    twitter = execution.result_for("twitter_post")
    assert twitter.status == NodeStatus.FAILED
    assert twitter.error.actionable == "Reconnect your twitter account"
    assert execution.result_for("linkedin_post").status == NodeStatus.SUCCESS
    assert len(clients[Platform.TWITTER].calls) == 1
