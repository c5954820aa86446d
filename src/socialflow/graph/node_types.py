"""
Node Types - The closed catalogue of node types.

Each type declares its category, its typed ports and a configuration
schema. Adding a node type means adding an entry here and an executor
in ``socialflow.nodes.dispatch``; there is no runtime registration.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Type
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from socialflow.content import MediaRef, PortType
from socialflow.platforms.constraints import Platform


class NodeCategory(str, Enum):
    TRIGGER = "trigger"
    GENERATOR = "generator"
    MODIFIER = "modifier"
    ACTION = "action"


class NodeType(str, Enum):
    SCHEDULE_TRIGGER = "schedule_trigger"
    MANUAL_TRIGGER = "manual_trigger"
    WEBHOOK_TRIGGER = "webhook_trigger"
    AI_TEXT = "ai_text"
    AI_IMAGE = "ai_image"
    RESIZE_IMAGE = "resize_image"
    REFORMAT_TEXT = "reformat_text"
    COMBINE_CONTENT = "combine_content"
    LINKEDIN_POST = "linkedin_post"
    TWITTER_POST = "twitter_post"
    INSTAGRAM_POST = "instagram_post"
    FACEBOOK_POST = "facebook_post"


# (source, target) pairs that may be connected
PORT_COMPATIBILITY: FrozenSet[Tuple[PortType, PortType]] = frozenset({
    (PortType.TEXT, PortType.TEXT),
    (PortType.TEXT, PortType.MIXED),
    (PortType.IMAGE, PortType.IMAGE),
    (PortType.IMAGE, PortType.MIXED),
    (PortType.VIDEO, PortType.VIDEO),
    (PortType.VIDEO, PortType.MIXED),
    (PortType.MIXED, PortType.MIXED),
})


def ports_compatible(source: PortType, target: PortType) -> bool:
    return (source, target) in PORT_COMPATIBILITY


class FallbackPolicy(str, Enum):
    """What a generator does when the generation collaborator fails."""
    CACHE = "cache"
    TEMPLATE = "template"
    SKIP = "skip"


# ---------------------------------------------------------------------------
# Configuration schemas
# ---------------------------------------------------------------------------

class NodeConfig(BaseModel):
    """Base for all node configurations. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout_s: Optional[float] = Field(
        None, gt=0, description="Overrides the default per-node deadline"
    )


class ScheduleTriggerConfig(NodeConfig):
    cron: Optional[str] = Field(None, description="Default cron expression for scheduling")
    timezone: str = Field("UTC")

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression: {v!r}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v!r}") from e
        return v


class ManualTriggerConfig(NodeConfig):
    payload: Dict[str, Any] = Field(default_factory=dict)


class WebhookTriggerConfig(NodeConfig):
    sample_payload: Any = None


class GeneratorConfig(NodeConfig):
    prompt: str = Field(..., min_length=1)
    model: str = Field("default")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    fallback: Optional[FallbackPolicy] = None


class AITextConfig(GeneratorConfig):
    max_length: Optional[int] = Field(None, gt=0)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    template_text: Optional[str] = None

    @model_validator(mode="after")
    def check_template(self) -> "AITextConfig":
        if self.fallback == FallbackPolicy.TEMPLATE and not self.template_text:
            raise ValueError("template_text is required when fallback is 'template'")
        return self


class AIImageConfig(GeneratorConfig):
    width: int = Field(1024, gt=0, le=8192)
    height: int = Field(1024, gt=0, le=8192)
    template_media: Optional[MediaRef] = None

    @model_validator(mode="after")
    def check_template(self) -> "AIImageConfig":
        if self.fallback == FallbackPolicy.TEMPLATE and self.template_media is None:
            raise ValueError("template_media is required when fallback is 'template'")
        return self


class ResizeImageConfig(NodeConfig):
    width: int = Field(..., gt=0, le=8192)
    height: int = Field(..., gt=0, le=8192)
    mode: Literal["fit", "exact"] = "fit"


class ReformatTextConfig(NodeConfig):
    prefix: str = ""
    suffix: str = ""
    hashtags: List[str] = Field(default_factory=list)
    case: Literal["none", "upper", "lower"] = "none"
    collapse_whitespace: bool = True

    @field_validator("hashtags")
    @classmethod
    def validate_hashtags(cls, v: List[str]) -> List[str]:
        for tag in v:
            if not tag.strip("#") or any(ch.isspace() for ch in tag):
                raise ValueError(f"invalid hashtag: {tag!r}")
        return v


class CombineContentConfig(NodeConfig):
    pass


class PublishConfig(NodeConfig):
    connection_id: str = Field(..., min_length=1)
    visibility: Literal["public", "connections"] = "public"
    thread: bool = Field(False, description="Split long text into a thread (twitter only)")


class TwitterPublishConfig(PublishConfig):
    pass


class NonThreadedPublishConfig(PublishConfig):
    @field_validator("thread")
    @classmethod
    def validate_thread(cls, v: bool) -> bool:
        if v:
            raise ValueError("thread is only supported for twitter_post")
        return v


# ---------------------------------------------------------------------------
# Type catalogue
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PortSpec:
    name: str
    type: PortType
    required: bool = True


@dataclass(frozen=True)
class NodeTypeSpec:
    type: NodeType
    category: NodeCategory
    inputs: Tuple[PortSpec, ...]
    outputs: Tuple[PortSpec, ...]
    config_model: Type[NodeConfig]
    platform: Optional[Platform] = None

    def input_port(self, name: str) -> Optional[PortSpec]:
        return next((p for p in self.inputs if p.name == name), None)

    def output_port(self, name: str) -> Optional[PortSpec]:
        return next((p for p in self.outputs if p.name == name), None)


_PAYLOAD_OUT = (PortSpec("payload", PortType.MIXED),)
_CONTEXT_IN = (PortSpec("context", PortType.MIXED, required=False),)
_PUBLISH_IN = (PortSpec("content", PortType.MIXED),)
_PUBLISH_OUT = (PortSpec("post", PortType.TEXT),)


def _publisher(node_type: NodeType, platform: Platform, config: Type[NodeConfig]) -> NodeTypeSpec:
    return NodeTypeSpec(node_type, NodeCategory.ACTION, _PUBLISH_IN, _PUBLISH_OUT, config, platform)


NODE_TYPES: Dict[NodeType, NodeTypeSpec] = {
    spec.type: spec
    for spec in (
        NodeTypeSpec(NodeType.SCHEDULE_TRIGGER, NodeCategory.TRIGGER, (), _PAYLOAD_OUT, ScheduleTriggerConfig),
        NodeTypeSpec(NodeType.MANUAL_TRIGGER, NodeCategory.TRIGGER, (), _PAYLOAD_OUT, ManualTriggerConfig),
        NodeTypeSpec(NodeType.WEBHOOK_TRIGGER, NodeCategory.TRIGGER, (), _PAYLOAD_OUT, WebhookTriggerConfig),
        NodeTypeSpec(
            NodeType.AI_TEXT, NodeCategory.GENERATOR,
            _CONTEXT_IN, (PortSpec("text", PortType.TEXT),), AITextConfig,
        ),
        NodeTypeSpec(
            NodeType.AI_IMAGE, NodeCategory.GENERATOR,
            _CONTEXT_IN, (PortSpec("image", PortType.IMAGE),), AIImageConfig,
        ),
        NodeTypeSpec(
            NodeType.RESIZE_IMAGE, NodeCategory.MODIFIER,
            (PortSpec("image", PortType.IMAGE),), (PortSpec("image", PortType.IMAGE),), ResizeImageConfig,
        ),
        NodeTypeSpec(
            NodeType.REFORMAT_TEXT, NodeCategory.MODIFIER,
            (PortSpec("text", PortType.TEXT),), (PortSpec("text", PortType.TEXT),), ReformatTextConfig,
        ),
        NodeTypeSpec(
            NodeType.COMBINE_CONTENT, NodeCategory.MODIFIER,
            (PortSpec("text", PortType.TEXT, required=False), PortSpec("media", PortType.IMAGE, required=False)),
            (PortSpec("content", PortType.MIXED),),
            CombineContentConfig,
        ),
        _publisher(NodeType.LINKEDIN_POST, Platform.LINKEDIN, NonThreadedPublishConfig),
        _publisher(NodeType.TWITTER_POST, Platform.TWITTER, TwitterPublishConfig),
        _publisher(NodeType.INSTAGRAM_POST, Platform.INSTAGRAM, NonThreadedPublishConfig),
        _publisher(NodeType.FACEBOOK_POST, Platform.FACEBOOK, NonThreadedPublishConfig),
    )
}

TRIGGER_TYPES: FrozenSet[NodeType] = frozenset(
    t for t, spec in NODE_TYPES.items() if spec.category == NodeCategory.TRIGGER
)


def get_type_spec(node_type: str) -> Optional[NodeTypeSpec]:
    """Look up a node type by its string tag. Unknown tags return None."""
    try:
        return NODE_TYPES[NodeType(node_type)]
    except ValueError:
        return None


def parse_config(node_type: str, config: Dict[str, Any]) -> NodeConfig:
    """
    Validate raw configuration against the node type's schema.

    Raises:
        KeyError: unknown node type
        pydantic.ValidationError: configuration does not match the schema
    """
    spec = get_type_spec(node_type)
    if spec is None:
        raise KeyError(node_type)
    return spec.config_model.model_validate(config)


__all__ = [
    "NodeCategory",
    "NodeType",
    "NodeConfig",
    "FallbackPolicy",
    "ScheduleTriggerConfig",
    "ManualTriggerConfig",
    "WebhookTriggerConfig",
    "AITextConfig",
    "AIImageConfig",
    "ResizeImageConfig",
    "ReformatTextConfig",
    "CombineContentConfig",
    "PublishConfig",
    "PortSpec",
    "NodeTypeSpec",
    "NODE_TYPES",
    "TRIGGER_TYPES",
    "PORT_COMPATIBILITY",
    "ports_compatible",
    "get_type_spec",
    "parse_config",
]
