"""Trigger executors: materialize the job's payload as the node's single output."""
from __future__ import annotations

from typing import Dict

from socialflow.content import ContentValue
from socialflow.graph.node_types import (
    ManualTriggerConfig,
    NodeType,
    ScheduleTriggerConfig,
    WebhookTriggerConfig,
)
from socialflow.jobs import utc_now

from .base import NodeContext, NodeExecutor, NodeOutcome


class ScheduleTriggerExecutor(NodeExecutor):
    """Outputs the scheduled firing instant; manual runs use the current time."""

    node_type = NodeType.SCHEDULE_TRIGGER

    def execute(self, inputs: Dict[str, ContentValue], config: ScheduleTriggerConfig, context: NodeContext) -> NodeOutcome:
        trigger = context.trigger
        if trigger is not None and trigger.kind == "schedule" and trigger.scheduled_for is not None:
            payload = {
                "scheduled_for": trigger.scheduled_for.isoformat(),
                "schedule_id": trigger.schedule_id,
            }
        else:
            payload = {"scheduled_for": utc_now().isoformat(), "schedule_id": None}
        return NodeOutcome(outputs={"payload": ContentValue.of_payload(payload)})


class ManualTriggerExecutor(NodeExecutor):
    node_type = NodeType.MANUAL_TRIGGER

    def execute(self, inputs: Dict[str, ContentValue], config: ManualTriggerConfig, context: NodeContext) -> NodeOutcome:
        trigger = context.trigger
        if (
            trigger is not None
            and trigger.kind == "manual"
            and trigger.data is not None
            and trigger.node_id in (None, context.node_id)
        ):
            payload = trigger.data
        else:
            payload = dict(config.payload)
        return NodeOutcome(outputs={"payload": ContentValue.of_payload(payload)})


class WebhookTriggerExecutor(NodeExecutor):
    """Outputs the inbound webhook body verbatim when the job targets this node."""

    node_type = NodeType.WEBHOOK_TRIGGER

    def execute(self, inputs: Dict[str, ContentValue], config: WebhookTriggerConfig, context: NodeContext) -> NodeOutcome:
        trigger = context.trigger
        if trigger is not None and trigger.kind == "webhook" and trigger.node_id == context.node_id:
            payload = trigger.data
        else:
            payload = config.sample_payload
        return NodeOutcome(outputs={"payload": ContentValue.of_payload(payload)})


__all__ = ["ScheduleTriggerExecutor", "ManualTriggerExecutor", "WebhookTriggerExecutor"]
