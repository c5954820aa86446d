"""
Modifier executors: pure, deterministic transforms.

Modifiers make no external calls. Image resizing only records the target
dimensions on the MediaRef; the publisher materializes them through the
media collaborator.
"""

from __future__ import annotations

import math
import re
from typing import Dict, List

from socialflow.content import ContentValue, MediaRef, PortType
from socialflow.errors import MalformedInputError
from socialflow.graph.node_types import CombineContentConfig, NodeType, ReformatTextConfig, ResizeImageConfig

from .base import NodeContext, NodeExecutor, NodeOutcome


def resize_target(ref: MediaRef, width: int, height: int, mode: str) -> MediaRef:
    """
    ``exact`` forces the box size. ``fit`` scales the image proportionally
    to fit inside the box; images of unknown size get the box size.
    """
    if mode == "exact" or not ref.width or not ref.height:
        return ref.model_copy(update={"target_width": width, "target_height": height})
    scale = min(width / ref.width, height / ref.height)
    return ref.model_copy(update={
        "target_width": max(1, math.floor(ref.width * scale)),
        "target_height": max(1, math.floor(ref.height * scale)),
    })


class ResizeImageExecutor(NodeExecutor):
    node_type = NodeType.RESIZE_IMAGE

    def execute(self, inputs: Dict[str, ContentValue], config: ResizeImageConfig, context: NodeContext) -> NodeOutcome:
        value = self.require_input(inputs, "image")
        images = [m for m in value.media if m.media_type == PortType.IMAGE]
        if not images:
            raise MalformedInputError("Input 'image' carries no image")
        resized = [resize_target(ref, config.width, config.height, config.mode) for ref in images]
        return NodeOutcome(outputs={"image": ContentValue(kind=PortType.IMAGE, media=resized)})


def reformat(text: str, config: ReformatTextConfig) -> str:
    if config.collapse_whitespace:
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r"\n{3,}", "\n\n", text).strip()
    if config.case == "upper":
        text = text.upper()
    elif config.case == "lower":
        text = text.lower()
    text = f"{config.prefix}{text}{config.suffix}"
    if config.hashtags:
        tags = " ".join(f"#{tag.lstrip('#')}" for tag in config.hashtags)
        text = f"{text}\n\n{tags}" if text else tags
    return text


class ReformatTextExecutor(NodeExecutor):
    node_type = NodeType.REFORMAT_TEXT

    def execute(self, inputs: Dict[str, ContentValue], config: ReformatTextConfig, context: NodeContext) -> NodeOutcome:
        value = self.require_input(inputs, "text")
        if value.text is None:
            raise MalformedInputError("Input 'text' carries no text")
        return NodeOutcome(outputs={"text": ContentValue.of_text(reformat(value.text, config))})


class CombineContentExecutor(NodeExecutor):
    """Joins text and media into one publishable value."""

    node_type = NodeType.COMBINE_CONTENT

    def execute(self, inputs: Dict[str, ContentValue], config: CombineContentConfig, context: NodeContext) -> NodeOutcome:
        text_value = inputs.get("text")
        media_value = inputs.get("media")
        if text_value is None and media_value is None:
            raise MalformedInputError("Nothing to combine: no text and no media input")

        text = text_value.text if text_value is not None else None
        media: List[MediaRef] = list(media_value.media) if media_value is not None else []
        if text_value is not None and text is None:
            raise MalformedInputError("Input 'text' carries no text")
        if media_value is not None and not media:
            raise MalformedInputError("Input 'media' carries no media")
        return NodeOutcome(outputs={"content": ContentValue(kind=PortType.MIXED, text=text, media=media)})


__all__ = [
    "ResizeImageExecutor",
    "ReformatTextExecutor",
    "CombineContentExecutor",
    "resize_target",
    "reformat",
]
