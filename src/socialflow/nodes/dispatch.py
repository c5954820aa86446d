"""
Exhaustive dispatch table over the closed set of node types.

Adding a node type means adding its entry here; the table is checked
against NodeType at import time.
"""

from __future__ import annotations

from typing import Dict

from socialflow.content import ContentValue
from socialflow.graph.models import Node
from socialflow.graph.node_types import NodeType, parse_config
from socialflow.platforms import Platform

from .actions import PublishExecutor
from .base import NodeContext, NodeExecutor, NodeOutcome
from .generators import AIImageExecutor, AITextExecutor
from .modifiers import CombineContentExecutor, ReformatTextExecutor, ResizeImageExecutor
from .triggers import ManualTriggerExecutor, ScheduleTriggerExecutor, WebhookTriggerExecutor

EXECUTORS: Dict[NodeType, NodeExecutor] = {
    NodeType.SCHEDULE_TRIGGER: ScheduleTriggerExecutor(),
    NodeType.MANUAL_TRIGGER: ManualTriggerExecutor(),
    NodeType.WEBHOOK_TRIGGER: WebhookTriggerExecutor(),
    NodeType.AI_TEXT: AITextExecutor(),
    NodeType.AI_IMAGE: AIImageExecutor(),
    NodeType.RESIZE_IMAGE: ResizeImageExecutor(),
    NodeType.REFORMAT_TEXT: ReformatTextExecutor(),
    NodeType.COMBINE_CONTENT: CombineContentExecutor(),
    NodeType.LINKEDIN_POST: PublishExecutor(NodeType.LINKEDIN_POST, Platform.LINKEDIN),
    NodeType.TWITTER_POST: PublishExecutor(NodeType.TWITTER_POST, Platform.TWITTER),
    NodeType.INSTAGRAM_POST: PublishExecutor(NodeType.INSTAGRAM_POST, Platform.INSTAGRAM),
    NodeType.FACEBOOK_POST: PublishExecutor(NodeType.FACEBOOK_POST, Platform.FACEBOOK),
}

_missing = set(NodeType) - set(EXECUTORS)
if _missing:
    raise RuntimeError(f"No executor for node types: {sorted(t.value for t in _missing)}")


def get_executor(node_type: NodeType | str) -> NodeExecutor:
    return EXECUTORS[NodeType(node_type)]


def dispatch(node: Node, inputs: Dict[str, ContentValue], context: NodeContext) -> NodeOutcome:
    """
    Validate the node's configuration and run its executor.

    Raises:
        pydantic.ValidationError: configuration does not match the schema
        NodeExecutionError: the node failed
    """
    config = parse_config(node.type, node.config)
    return get_executor(node.type).execute(inputs, config, context)


__all__ = ["EXECUTORS", "get_executor", "dispatch"]
