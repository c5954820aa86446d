"""Publisher executors: format for the platform, then publish idempotently."""
from __future__ import annotations

from typing import Dict

from socialflow.content import ContentValue, PortType
from socialflow.graph.node_types import NodeType, PublishConfig
from socialflow.platforms import Platform, PublishTask, format_content
from socialflow.utils import RetryPolicy, call_with_timeout

from .base import NodeContext, NodeExecutor, NodeOutcome


class PublishExecutor(NodeExecutor):
    def __init__(self, node_type: NodeType, platform: Platform):
        self.node_type = node_type
        self.platform = platform

    def execute(self, inputs: Dict[str, ContentValue], config: PublishConfig, context: NodeContext) -> NodeOutcome:
        content = self.require_input(inputs, "content")
        settings = context.settings

        # Validation failures surface before any network call
        formatted = format_content(content, self.platform, thread=config.thread)

        context.check_deadline()
        connection = call_with_timeout(
            context.services.connections.lookup_connection,
            context.remaining(settings.collaborator_timeout_s),
            config.connection_id,
            label="connection lookup",
        )

        task = PublishTask(
            dedupe_key=context.dedupe_key,
            formatted=formatted,
            visibility=config.visibility,
            retry=RetryPolicy(
                max_attempts=settings.publish_max_attempts,
                base_delay=settings.publish_backoff_base_s,
                max_delay=settings.publish_backoff_max_s,
            ),
            timeout_s=settings.publish_timeout_s,
            deadline=context.deadline,
        )
        result = context.services.publisher.publish(task, connection)

        post = ContentValue(
            kind=PortType.TEXT,
            text=result.post_url or result.post_id,
            data=result.model_dump(mode="json", exclude={"published_at", "deduplicated", "attempts"}),
        )
        return NodeOutcome(
            outputs={"post": post},
            attempts=result.attempts,
            detail={
                "post_id": result.post_id,
                "deduplicated": result.deduplicated,
                "adjustments": formatted.adjustments,
            },
        )


__all__ = ["PublishExecutor"]
